"""
Custom exceptions for SSDP search.

Transport creation problems are raised directly; transport failures during
an active search are wrapped and handed to the session listener.
"""


class SSDPError(Exception):
    """Base exception for all SSDP search errors."""

    pass


class TransportCreationError(SSDPError):
    """Raised when a multicast transport cannot be created for an address."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Cannot create multicast transport for {host}:{port}: {reason}")


class SearchAbortedError(SSDPError):
    """Raised (or reported) when a search ends because the transport failed."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"SSDP search aborted: {cause}")
        self.__cause__ = cause
