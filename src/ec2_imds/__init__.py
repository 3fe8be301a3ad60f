from .aio import AsyncMetadataClient
from .client import MetadataClient
from .errors import (
    MetadataError,
    MetadataHTTPError,
    MetadataParseError,
    MetadataTransportError,
)
from .models import IamInfo, InstanceMetadata, region_from_availability_zone
from .transport import HTTPConnectionTransport, Request, Response, Transport

__all__ = [
    "AsyncMetadataClient",
    "HTTPConnectionTransport",
    "IamInfo",
    "InstanceMetadata",
    "MetadataClient",
    "MetadataError",
    "MetadataHTTPError",
    "MetadataParseError",
    "MetadataTransportError",
    "Request",
    "Response",
    "Transport",
    "region_from_availability_zone",
]
