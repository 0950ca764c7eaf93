"""
Awaitable SSDP scanner.

Wraps a single SSDPSearchSession so callers can simply await the list of
services found during one search.
"""

import asyncio
import logging
from typing import Callable, Optional

from .config import SearchConfiguration
from .exceptions import SearchAbortedError
from .models import SSDPService
from .parser import ServiceParser
from .session import SSDPSearchSession
from .transport import TransportFactory

logger = logging.getLogger("ssdp.scanner")


class _FutureListener:
    """Resolves a future with the terminal outcome of a session."""

    def __init__(
        self,
        future: asyncio.Future,
        on_service_found: Optional[Callable[[SSDPService], None]] = None,
    ):
        self._future = future
        self._on_service_found = on_service_found

    def on_service_found(self, session: SSDPSearchSession, service: SSDPService) -> None:
        if self._on_service_found is not None:
            self._on_service_found(service)

    def on_aborted(self, session: SSDPSearchSession, error: SearchAbortedError) -> None:
        if not self._future.done():
            self._future.set_exception(error)

    def on_stopped(self, session: SSDPSearchSession, services: list[SSDPService]) -> None:
        if not self._future.done():
            self._future.set_result(services)


class SSDPScanner:
    """
    SSDP network scanner.

    Each scan() runs a fresh search session; sessions are single-use.
    """

    def __init__(
        self,
        transport_factory: Optional[TransportFactory] = None,
        parser: Optional[ServiceParser] = None,
    ):
        self._transport_factory = transport_factory
        self._parser = parser

    @property
    def protocol_name(self) -> str:
        return "ssdp"

    async def scan(
        self,
        configuration: SearchConfiguration,
        on_service_found: Optional[Callable[[SSDPService], None]] = None,
    ) -> list[SSDPService]:
        """
        Search the network for SSDP services.

        Args:
            configuration: What to search for and how often to broadcast
            on_service_found: Optional callback invoked as each service is found

        Returns:
            Services found before the search completed

        Raises:
            TransportCreationError: If no transport could be created
            SearchAbortedError: If the transport failed during the search
        """
        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()

        session = SSDPSearchSession(
            configuration,
            listener=_FutureListener(result, on_service_found),
            transport_factory=self._transport_factory,
            parser=self._parser,
        )

        logger.info(
            "Starting SSDP scan for %s (timeout=%.1fs)",
            configuration.search_target,
            configuration.search_timeout,
        )
        session.start()
        try:
            services = await result
        finally:
            # No-op once the session has terminated; stops it if we were cancelled
            session.stop()

        logger.info("SSDP scan complete: found %d services", len(services))
        return services
