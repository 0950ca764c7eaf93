"""
Multicast UDP transport for SSDP searches.

Owns one datagram socket joined to the SSDP multicast group. Opening is
asynchronous: start() returns immediately and readiness (or failure) is
reported to the delegate later, always on the event loop thread.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from enum import Enum
from typing import Optional, Protocol

from .config import SSDPSettings, settings
from .exceptions import TransportCreationError

logger = logging.getLogger("ssdp.transport")


class TransportState(Enum):
    """Lifecycle states reported by a transport."""

    SETUP = "setup"
    WAITING = "waiting"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransportDelegate(Protocol):
    """Receives state changes and inbound datagrams from a transport."""

    def transport_state_changed(
        self,
        transport: Transport,
        state: TransportState,
        error: Optional[BaseException],
    ) -> None:
        ...

    def transport_received(self, transport: Transport, data: bytes, address: tuple) -> None:
        ...


class Transport(Protocol):
    """What a search session needs from a multicast transport."""

    delegate: Optional[TransportDelegate]

    def start(self) -> None:
        ...

    def send(self, data: bytes) -> None:
        ...

    def close(self) -> None:
        ...


class TransportFactory(Protocol):
    """Creates a transport for a multicast group, or raises TransportCreationError."""

    def create(self, host: str, port: int) -> Transport:
        ...


class MulticastTransport(asyncio.DatagramProtocol):
    """
    asyncio datagram endpoint bound to an ephemeral port and joined to a
    multicast group.

    Messages sent before the endpoint is ready are queued and flushed in
    order once it is. Messages sent after failure or close are dropped.
    """

    def __init__(
        self,
        host: str,
        port: int,
        interface: str = "0.0.0.0",
        ttl: int = 2,
    ):
        self.host = host
        self.port = port
        self.interface = interface
        self.ttl = ttl
        self.delegate: Optional[TransportDelegate] = None

        self._state: Optional[TransportState] = None
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._open_task: Optional[asyncio.Task] = None
        self._pending: list[bytes] = []

    @property
    def state(self) -> Optional[TransportState]:
        """Current state, or None before start()."""
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state in (TransportState.FAILED, TransportState.CANCELLED)

    # -- Public API -------------------------------------------------------

    def start(self) -> None:
        """Begin opening the socket. Must be called with a running loop."""
        if self._state is not None:
            logger.debug("Transport for %s:%d already started", self.host, self.port)
            return

        loop = asyncio.get_running_loop()
        self._set_state(TransportState.SETUP)
        self._open_task = loop.create_task(self._open())

    def send(self, data: bytes) -> None:
        """Send a datagram to the group, queueing it until the socket is ready."""
        if self.is_closed:
            logger.warning("Attempting to send on a closed multicast transport")
            return

        if self._transport is None:
            self._pending.append(data)
            return

        try:
            self._transport.sendto(data, (self.host, self.port))
        except OSError as e:
            self._fail(e)

    def close(self) -> None:
        """Leave the group and release the socket. Safe to call repeatedly."""
        if self._state is TransportState.CANCELLED:
            return

        if self._open_task and not self._open_task.done():
            self._open_task.cancel()
        self._open_task = None

        if self._transport is not None:
            self._transport.close()
            self._transport = None

        self._pending.clear()
        self._set_state(TransportState.CANCELLED)

    # -- asyncio.DatagramProtocol -----------------------------------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        if self.is_closed:
            transport.close()
            return

        self._transport = transport  # type: ignore[assignment]
        logger.debug("Joined multicast group %s:%d", self.host, self.port)
        self._set_state(TransportState.READY)
        self._flush_pending()

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        if self._state is not TransportState.READY or self.delegate is None:
            return
        self.delegate.transport_received(self, data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.error("Multicast transport error: %s", exc)
        self._fail(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._transport = None
        if exc is not None:
            self._fail(exc)

    # -- Internal ---------------------------------------------------------

    async def _open(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            sock = self._create_socket()
        except OSError as e:
            logger.error("Failed to open multicast socket for %s:%d: %s", self.host, self.port, e)
            self._fail(e)
            return

        try:
            await loop.create_datagram_endpoint(lambda: self, sock=sock)
        except OSError as e:
            sock.close()
            logger.error("Failed to create datagram endpoint: %s", e)
            self._fail(e)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.ttl)
            if self.interface != "0.0.0.0":
                sock.setsockopt(
                    socket.IPPROTO_IP,
                    socket.IP_MULTICAST_IF,
                    socket.inet_aton(self.interface),
                )
            sock.bind(("", 0))

            membership = socket.inet_aton(self.host) + socket.inet_aton(self.interface)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    def _flush_pending(self) -> None:
        pending, self._pending = self._pending, []
        for data in pending:
            self.send(data)

    def _fail(self, error: BaseException) -> None:
        if self.is_closed:
            return
        self._set_state(TransportState.FAILED, error)

    def _set_state(self, state: TransportState, error: Optional[BaseException] = None) -> None:
        self._state = state
        logger.debug("Multicast transport is in the `%s` state", state.value)
        if self.delegate is not None:
            self.delegate.transport_state_changed(self, state, error)


class MulticastTransportFactory:
    """Validates the group address and creates MulticastTransport instances."""

    def __init__(self, ssdp_settings: Optional[SSDPSettings] = None):
        self._settings = ssdp_settings or settings

    def create(self, host: str, port: int) -> MulticastTransport:
        try:
            address = ipaddress.IPv4Address(host)
        except ValueError:
            raise TransportCreationError(host, port, "not an IPv4 address") from None

        if not address.is_multicast:
            raise TransportCreationError(host, port, "not a multicast address")
        if not 0 < port < 65536:
            raise TransportCreationError(host, port, "port out of range")

        return MulticastTransport(
            host,
            port,
            interface=self._settings.interface,
            ttl=self._settings.multicast_ttl,
        )
