"""
SSDP service discovery.

Broadcasts M-SEARCH queries over UDP multicast, collects and deduplicates
the responses, and reports one terminal outcome per search session.
"""

from .config import (
    SSDP_ALL,
    SSDP_MULTICAST_HOST,
    SSDP_MULTICAST_PORT,
    SearchConfiguration,
    SSDPSettings,
    settings,
)
from .exceptions import SearchAbortedError, SSDPError, TransportCreationError
from .models import SSDPService
from .parser import ServiceParser, SSDPServiceParser
from .scanner import SSDPScanner
from .session import (
    SearchSessionListener,
    SessionState,
    SSDPSearchSession,
    build_search_message,
)
from .transport import (
    MulticastTransport,
    MulticastTransportFactory,
    TransportState,
)

__all__ = [
    "SSDP_ALL",
    "SSDP_MULTICAST_HOST",
    "SSDP_MULTICAST_PORT",
    "SearchConfiguration",
    "SSDPSettings",
    "settings",
    "SSDPError",
    "SearchAbortedError",
    "TransportCreationError",
    "SSDPService",
    "ServiceParser",
    "SSDPServiceParser",
    "SSDPScanner",
    "SearchSessionListener",
    "SessionState",
    "SSDPSearchSession",
    "build_search_message",
    "MulticastTransport",
    "MulticastTransportFactory",
    "TransportState",
]
