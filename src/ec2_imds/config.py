import math
from os import environ
from typing import Literal, Mapping, Optional, Tuple
from urllib.parse import urlparse

import msgspec

DEFAULT_ENDPOINT = "http://169.254.169.254"
DEFAULT_IPV6_ENDPOINT = "http://[fd00:ec2::254]"
DEFAULT_TIMEOUT: float = 1
DEFAULT_TOKEN_TTL = 21600  # seconds, the maximum IMDS accepts

ENDPOINT_ENV = "AWS_EC2_METADATA_SERVICE_ENDPOINT"
ENDPOINT_MODE_ENV = "AWS_EC2_METADATA_SERVICE_ENDPOINT_MODE"
TIMEOUT_ENV = "AWS_METADATA_SERVICE_TIMEOUT"

EndpointMode = Literal["ipv4", "ipv6"]


class ClientConfig(msgspec.Struct, frozen=True):
    endpoint: str
    host: str
    port: int
    timeout: float
    token_ttl: int


def _endpoint_mode(value: str) -> EndpointMode:
    mode = value.strip().lower()
    if mode not in ("ipv4", "ipv6"):
        raise ValueError(f"Invalid endpoint mode {value!r}, expected IPv4 or IPv6")
    return mode  # type: ignore


def _split_endpoint(endpoint: str) -> Tuple[str, int]:
    parsed = urlparse(endpoint)
    if parsed.scheme != "http" or not parsed.hostname:
        raise ValueError(f"Invalid metadata endpoint {endpoint!r}")
    if parsed.path or parsed.query or parsed.fragment:
        raise ValueError(f"Metadata endpoint {endpoint!r} must not have a path")
    return parsed.hostname, parsed.port or 80


def load_config(
    endpoint: Optional[str] = None,
    endpoint_mode: Optional[str] = None,
    timeout: Optional[float] = None,
    token_ttl: int = DEFAULT_TOKEN_TTL,
    env: Optional[Mapping[str, str]] = None,
) -> ClientConfig:
    """
    Resolve client settings from arguments, falling back to the environment.

    An explicit ``endpoint`` wins over ``endpoint_mode``; both win over
    ``AWS_EC2_METADATA_SERVICE_ENDPOINT`` and
    ``AWS_EC2_METADATA_SERVICE_ENDPOINT_MODE``.

    :raises ValueError: If any setting is malformed.
    """
    if env is None:
        env = environ

    if endpoint is None and endpoint_mode is None:
        endpoint = env.get(ENDPOINT_ENV) or None
    if endpoint is None:
        mode = _endpoint_mode(endpoint_mode or env.get(ENDPOINT_MODE_ENV) or "ipv4")
        endpoint = DEFAULT_IPV6_ENDPOINT if mode == "ipv6" else DEFAULT_ENDPOINT

    endpoint = endpoint.rstrip("/")
    host, port = _split_endpoint(endpoint)

    if timeout is None:
        raw_timeout = env.get(TIMEOUT_ENV)
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ValueError(f"Invalid {TIMEOUT_ENV} {raw_timeout!r}") from None
        else:
            timeout = DEFAULT_TIMEOUT
    if not math.isfinite(timeout) or timeout <= 0:
        raise ValueError(f"Timeout must be a positive number, got {timeout}")

    if not 1 <= token_ttl <= DEFAULT_TOKEN_TTL:
        raise ValueError(
            f"Token TTL must be between 1 and {DEFAULT_TOKEN_TTL} seconds, got {token_ttl}"
        )

    return ClientConfig(
        endpoint=endpoint,
        host=host,
        port=port,
        timeout=timeout,
        token_ttl=token_ttl,
    )
