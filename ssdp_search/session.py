"""
SSDP search session.

Drives one multicast transport through a single search: sends the M-SEARCH
query on a paced schedule, enforces the overall deadline, filters and
deduplicates responses, and reports exactly one terminal outcome to its
listener.

All session state is touched only on the event loop the session was
started on. Transport callbacks and both timers run there; stop() may be
called from any thread and is redirected onto the loop.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol

from .config import SearchConfiguration
from .exceptions import SearchAbortedError
from .models import SSDPService
from .parser import ServiceParser, SSDPServiceParser
from .transport import (
    MulticastTransportFactory,
    Transport,
    TransportFactory,
    TransportState,
)

logger = logging.getLogger("ssdp.session")


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    TERMINATED = "terminated"


class SearchSessionListener(Protocol):
    """Receives the results of a search session."""

    def on_service_found(self, session: SSDPSearchSession, service: SSDPService) -> None:
        """Called once per newly found, matching service."""
        ...

    def on_aborted(self, session: SSDPSearchSession, error: SearchAbortedError) -> None:
        """Called at most once, when the transport failed during the search."""
        ...

    def on_stopped(self, session: SSDPSearchSession, services: list[SSDPService]) -> None:
        """Called at most once, when the search completed, timed out or was stopped."""
        ...


def build_search_message(configuration: SearchConfiguration) -> bytes:
    """Build the M-SEARCH datagram for a configuration."""
    # Each line must end in \r\n
    message = (
        "M-SEARCH * HTTP/1.1\r\n"
        f"HOST: {configuration.host}:{configuration.port}\r\n"
        'MAN: "ssdp:discover"\r\n'
        f"ST: {configuration.search_target}\r\n"
        f"MX: {int(configuration.maximum_wait_response_time)}\r\n"
        "\r\n"
    )
    return message.encode("utf-8")


class SSDPSearchSession:
    """
    Single-use SSDP search.

    Lifecycle is IDLE -> ACTIVE -> TERMINATED. start() may be called once;
    stop() is idempotent. Once started, the listener receives exactly one
    of on_stopped or on_aborted.

    Raises TransportCreationError from the constructor if the transport
    factory cannot create a transport for the configured group.
    """

    def __init__(
        self,
        configuration: SearchConfiguration,
        listener: Optional[SearchSessionListener] = None,
        transport_factory: Optional[TransportFactory] = None,
        parser: Optional[ServiceParser] = None,
    ):
        factory = transport_factory or MulticastTransportFactory()

        self.listener = listener
        self._configuration = configuration
        self._transport: Transport = factory.create(configuration.host, configuration.port)
        self._transport.delegate = self
        self._parser = parser or SSDPServiceParser()
        self._search_message = build_search_message(configuration)

        self._state = SessionState.IDLE
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._found_services: list[SSDPService] = []
        self._broadcast_task: Optional[asyncio.Task] = None
        self._timeout_task: Optional[asyncio.Task] = None

    @property
    def configuration(self) -> SearchConfiguration:
        return self._configuration

    @property
    def search_message(self) -> bytes:
        return self._search_message

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def found_services(self) -> list[SSDPService]:
        return list(self._found_services)

    # -- Search -----------------------------------------------------------

    def start(self) -> None:
        """
        Start searching.

        Returns without waiting for the transport; broadcasting begins
        once the transport reports it is ready. With a broadcast count of
        zero the search stops immediately and the transport is never
        started.
        """
        if self._state is not SessionState.IDLE:
            raise RuntimeError("SSDP search session can only be started once")

        if self._configuration.maximum_broadcasts_before_closing == 0:
            logger.info("SSDP search has no broadcasts configured, stopping immediately")
            self._state = SessionState.TERMINATED
            self._notify("on_stopped", [])
            return

        logger.info(
            "SSDP search session starting (st=%s, timeout=%.1fs)",
            self._configuration.search_target,
            self._configuration.search_timeout,
        )
        self._loop = asyncio.get_running_loop()
        self._state = SessionState.ACTIVE
        self._transport.start()

    def stop(self) -> None:
        """Stop searching and report what has been found so far."""
        loop = self._loop
        if (
            loop is not None
            and not loop.is_closed()
            and loop.is_running()
            and not _running_on(loop)
        ):
            loop.call_soon_threadsafe(self.stop)
            return

        if self._state is SessionState.TERMINATED:
            return

        logger.info("SSDP search session stopping")
        self._close()

    def _search_timed_out(self) -> None:
        logger.info("SSDP search timed out")
        self.stop()

    # -- Close ------------------------------------------------------------

    def _close(self, error: Optional[SearchAbortedError] = None) -> None:
        if self._state is SessionState.TERMINATED:
            return

        self._state = SessionState.TERMINATED
        self._cancel_timers()
        self._transport.close()

        if error is not None:
            self._notify("on_aborted", error)
        else:
            self._notify("on_stopped", list(self._found_services))

    def _cancel_timers(self) -> None:
        # A timer that triggered the close must not cancel itself
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        for attr in ("_broadcast_task", "_timeout_task"):
            task = getattr(self, attr)
            if task is not None and task is not current and not task.done():
                task.cancel()
            setattr(self, attr, None)

    def _notify(self, method: str, *args: Any) -> None:
        if self.listener is None:
            return
        try:
            getattr(self.listener, method)(self, *args)
        except Exception as e:
            logger.error("Search session listener %s failed: %s", method, e)

    # -- Send -------------------------------------------------------------

    def _transport_ready(self) -> None:
        if self._state is not SessionState.ACTIVE or self._timeout_task is not None:
            return

        search_timeout = self._configuration.search_timeout
        self._timeout_task = self._loop.create_task(self._time_out_after(search_timeout))
        self._send_search_messages(search_timeout)

    def _send_search_messages(self, search_timeout: float) -> None:
        broadcasts = self._configuration.maximum_broadcasts_before_closing

        first_sent_at = self._loop.time()
        self._write(self._search_message)
        if self._state is not SessionState.ACTIVE:
            # The first send failed and already closed the session
            return

        if broadcasts > 1:
            # Spread the repeats over the window before the final response
            # wait so the last query still gets a full MX to be answered
            window = search_timeout - self._configuration.maximum_wait_response_time
            interval = window / (broadcasts - 1)
            self._broadcast_task = self._loop.create_task(
                self._repeat_broadcast(first_sent_at, interval, broadcasts - 1)
            )

    async def _repeat_broadcast(self, first_sent_at: float, interval: float, repeats: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            for n in range(1, repeats + 1):
                await asyncio.sleep(max(0.0, first_sent_at + n * interval - loop.time()))
                if self._state is not SessionState.ACTIVE:
                    return
                self._write(self._search_message)
                if self._state is not SessionState.ACTIVE:
                    # A failed send closed the session from inside this task
                    return
        except asyncio.CancelledError:
            pass

    async def _time_out_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        self._search_timed_out()

    def _write(self, message: bytes) -> None:
        logger.debug("Sending M-SEARCH to %s:%d", self._configuration.host, self._configuration.port)
        self._transport.send(message)

    # -- TransportDelegate ------------------------------------------------

    def transport_state_changed(
        self,
        transport: Transport,
        state: TransportState,
        error: Optional[BaseException],
    ) -> None:
        if state is TransportState.READY:
            logger.info("Transport is in the `ready` state")
            self._transport_ready()
        elif state is TransportState.FAILED:
            logger.error("Transport is in the `failed` state: %s", error)
            cause = error if error is not None else OSError("transport failed")
            self._close(SearchAbortedError(cause))
        elif isinstance(state, TransportState):
            logger.debug("Transport is in the `%s` state", state.value)
        else:
            logger.warning("Transport reported an unknown state: %r", state)

    def transport_received(self, transport: Transport, data: bytes, address: tuple) -> None:
        if self._state is not SessionState.ACTIVE or not data:
            return

        service = self._parser.parse(data)
        if service is None:
            logger.debug("Dropping unparsable response from %s", address[0] if address else "?")
            return

        if not self._searched_for_service(service):
            logger.debug("Dropping response for unrequested target %s", service.search_target)
            return

        if service in self._found_services:
            return

        logger.info("Received a valid service response: %s", service)
        self._found_services.append(service)
        self._notify("on_service_found", service)

    def _searched_for_service(self, service: SSDPService) -> bool:
        return (
            self._configuration.search_target in service.search_target
            or self._configuration.is_search_all
        )


def _running_on(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
