import http.client
import logging
from typing import Dict, Optional, Protocol

import msgspec

from .errors import MetadataTransportError

logger = logging.getLogger("ec2_imds")


class Request(msgspec.Struct, frozen=True):
    method: str
    path: str
    headers: Dict[str, str] = {}


class Response(msgspec.Struct, frozen=True):
    status: int
    body: bytes
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Anything with ``send(request) -> Response`` can back a client."""

    def send(self, request: Request) -> Response: ...


class HTTPConnectionTransport:
    def __init__(self, host: str, port: Optional[int] = None, timeout: float = 1):
        self.host = host
        self.port = port
        self.timeout = timeout

    def send(self, request: Request) -> Response:
        conn: Optional[http.client.HTTPConnection] = None

        try:
            conn = http.client.HTTPConnection(
                self.host, port=self.port, timeout=self.timeout
            )
            conn.request(request.method, request.path, headers=request.headers)
            response = conn.getresponse()
            return Response(
                status=response.status,
                body=response.read(),
                reason=response.reason,
            )
        except (OSError, http.client.HTTPException) as err:
            logger.debug(f"{request.method} {request.path} failed: {err}")
            raise MetadataTransportError(
                f"Failed to reach metadata service at {self.host}: {err}"
            ) from err
        finally:
            if conn is not None:
                conn.close()
