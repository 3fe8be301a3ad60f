from typing import Optional


class MetadataError(Exception):
    pass


class MetadataTransportError(MetadataError):
    """The metadata service could not be reached (refused, timed out, ...)."""


class MetadataHTTPError(MetadataError):
    def __init__(self, path: str, status: int, reason: Optional[str] = None):
        self.path = path
        self.status = status
        self.reason = reason
        message = f"{path}: HTTP {status}"
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class MetadataParseError(MetadataError):
    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")
