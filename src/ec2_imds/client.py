import logging
from typing import Dict, Optional

from .config import ClientConfig, load_config
from .errors import MetadataHTTPError, MetadataParseError
from .models import (
    IAM_INFO,
    IAM_ROLE,
    METADATA_PATHS,
    OPTIONAL_PATHS,
    InstanceMetadata,
    build_metadata,
)
from .transport import HTTPConnectionTransport, Request, Response, Transport

logger = logging.getLogger("ec2_imds")
logger.addHandler(logging.NullHandler())

TOKEN_PATH = "/latest/api/token"
METADATA_PREFIX = "/latest/meta-data/"

TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"


def token_request(ttl: int) -> Request:
    return Request("PUT", TOKEN_PATH, {TOKEN_TTL_HEADER: str(ttl)})


def metadata_request(path: str, token: str) -> Request:
    return Request("GET", f"{METADATA_PREFIX}{path}", {TOKEN_HEADER: token})


def read_token(response: Response) -> str:
    if not response.ok:
        raise MetadataHTTPError(TOKEN_PATH, response.status, response.reason)
    token = response.body.decode("utf-8", errors="replace").strip()
    if not token:
        raise MetadataParseError(TOKEN_PATH, "Empty session token")
    return token


def read_field(path: str, response: Response) -> Optional[bytes]:
    """
    Return the body of a field response, ``None`` for an absent optional path.

    :raises MetadataHTTPError: On any other non-2xx status.
    """
    if response.ok:
        return response.body
    if response.status == 404 and path in OPTIONAL_PATHS:
        logger.debug(f"Optional metadata {path} not present")
        return None
    raise MetadataHTTPError(f"{METADATA_PREFIX}{path}", response.status, response.reason)


class MetadataClient:
    """
    Blocking client for the EC2 Instance Metadata Service (IMDSv2).

    Construction performs no network I/O. Every call to :meth:`get` requests
    a fresh session token and then fetches each metadata path in turn.

    :param endpoint: Metadata service URL, defaults to ``http://169.254.169.254``
        or ``AWS_EC2_METADATA_SERVICE_ENDPOINT``.
    :type endpoint: Optional[str]
    :param endpoint_mode: ``"IPv4"`` or ``"IPv6"`` when no endpoint is given.
    :type endpoint_mode: Optional[str]
    :param timeout: Per-request timeout in seconds.
    :type timeout: Optional[float]
    :param token_ttl: Lifetime of the session token in seconds.
    :type token_ttl: int
    :param transport: Anything with ``send(request) -> Response``.
    :type transport: Optional[Transport]
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        endpoint_mode: Optional[str] = None,
        timeout: Optional[float] = None,
        token_ttl: int = 21600,
        transport: Optional[Transport] = None,
    ):
        self.config: ClientConfig = load_config(
            endpoint=endpoint,
            endpoint_mode=endpoint_mode,
            timeout=timeout,
            token_ttl=token_ttl,
        )
        self.transport = transport or HTTPConnectionTransport(
            self.config.host, port=self.config.port, timeout=self.config.timeout
        )

    def get_token(self) -> str:
        logger.debug(f"Requesting session token from {self.config.endpoint}")
        return read_token(self.transport.send(token_request(self.config.token_ttl)))

    def get_path(self, path: str, token: str) -> Optional[bytes]:
        logger.debug(f"Fetching metadata {path}")
        return read_field(path, self.transport.send(metadata_request(path, token)))

    def get(self) -> InstanceMetadata:
        """
        Fetch the metadata of the running instance.

        :return: Fully populated instance metadata.
        :rtype: InstanceMetadata
        :raises MetadataTransportError: If the service cannot be reached.
        :raises MetadataHTTPError: If the token or a required field request fails.
        :raises MetadataParseError: If a body does not have the expected shape.
        """
        token = self.get_token()

        bodies: Dict[str, Optional[bytes]] = {}
        for path in METADATA_PATHS:
            bodies[path] = self.get_path(path, token)

        if bodies[IAM_INFO] is not None:
            bodies[IAM_ROLE] = self.get_path(IAM_ROLE, token)

        return build_metadata(bodies)
