import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

import aiohttp

from .client import metadata_request, read_field, read_token, token_request
from .config import ClientConfig, load_config
from .errors import MetadataTransportError
from .models import IAM_INFO, IAM_ROLE, METADATA_PATHS, InstanceMetadata, build_metadata
from .transport import Request, Response

logger = logging.getLogger("ec2_imds")


class AsyncMetadataClient:
    """
    Async client for the EC2 Instance Metadata Service using aiohttp.

    Same contract as :class:`~ec2_imds.client.MetadataClient`; requests are
    awaited one after another.

    :param client_factory: Factory function to create an aiohttp ClientSession.
    :type client_factory: Callable[[], Awaitable[aiohttp.ClientSession]]
    """

    def __init__(
        self,
        client_factory: Optional[Callable[[], Awaitable[aiohttp.ClientSession]]] = None,
        endpoint: Optional[str] = None,
        endpoint_mode: Optional[str] = None,
        timeout: Optional[float] = None,
        token_ttl: int = 21600,
    ):
        self.config: ClientConfig = load_config(
            endpoint=endpoint,
            endpoint_mode=endpoint_mode,
            timeout=timeout,
            token_ttl=token_ttl,
        )
        self.client_factory = client_factory
        self.client: Optional[aiohttp.ClientSession] = None
        self.owns_client = False
        self.client_factory_lock = asyncio.Lock()

    async def _session(self) -> aiohttp.ClientSession:
        if self.client is None:
            async with self.client_factory_lock:
                if self.client is None:
                    if self.client_factory:
                        logger.debug("User defined client_factory")
                        self.client = await self.client_factory()
                    else:
                        self.client = aiohttp.ClientSession()
                        self.owns_client = True
        return self.client

    async def send(self, request: Request) -> Response:
        client = await self._session()
        try:
            response = await client.request(
                request.method,
                f"{self.config.endpoint}{request.path}",
                headers=request.headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
            try:
                body = await response.read()
            finally:
                response.release()
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            logger.debug(f"{request.method} {request.path} failed: {err!r}")
            raise MetadataTransportError(
                f"Failed to reach metadata service at {self.config.endpoint}: {err!r}"
            ) from err

        return Response(status=response.status, body=body, reason=response.reason)

    async def get_token(self) -> str:
        logger.debug(f"Requesting session token from {self.config.endpoint}")
        return read_token(await self.send(token_request(self.config.token_ttl)))

    async def get_path(self, path: str, token: str) -> Optional[bytes]:
        logger.debug(f"Fetching metadata {path}")
        return read_field(path, await self.send(metadata_request(path, token)))

    async def get(self) -> InstanceMetadata:
        token = await self.get_token()

        bodies: Dict[str, Optional[bytes]] = {}
        for path in METADATA_PATHS:
            bodies[path] = await self.get_path(path, token)

        if bodies[IAM_INFO] is not None:
            bodies[IAM_ROLE] = await self.get_path(IAM_ROLE, token)

        return build_metadata(bodies)

    async def close(self) -> None:
        if self.client is not None and self.owns_client:
            await self.client.close()
        self.client = None
        self.owns_client = False
