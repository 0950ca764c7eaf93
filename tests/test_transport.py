"""Tests for the multicast transport and its factory.

The socket layer is replaced with mocks; these tests cover state reporting,
send queueing and close semantics, not real multicast traffic.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from ssdp_search.config import SSDPSettings
from ssdp_search.exceptions import TransportCreationError
from ssdp_search.transport import (
    MulticastTransport,
    MulticastTransportFactory,
    TransportState,
)

GROUP = ("239.255.255.250", 1900)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_transport():
    transport = MulticastTransport(*GROUP)
    delegate = MagicMock()
    transport.delegate = delegate
    return transport, delegate


def _states(delegate) -> list[TransportState]:
    return [c.args[1] for c in delegate.transport_state_changed.call_args_list]


# ---------------------------------------------------------------------------
# TestFactory
# ---------------------------------------------------------------------------


class TestFactory:
    def test_creates_transport_with_settings(self):
        factory = MulticastTransportFactory(SSDPSettings(interface="192.168.1.5", multicast_ttl=4))

        transport = factory.create(*GROUP)

        assert isinstance(transport, MulticastTransport)
        assert (transport.host, transport.port) == GROUP
        assert transport.interface == "192.168.1.5"
        assert transport.ttl == 4
        assert transport.state is None

    def test_rejects_unicast_address(self):
        with pytest.raises(TransportCreationError, match="not a multicast address"):
            MulticastTransportFactory().create("192.168.1.1", 1900)

    def test_rejects_hostname(self):
        with pytest.raises(TransportCreationError, match="not an IPv4 address"):
            MulticastTransportFactory().create("ssdp.local", 1900)

    @pytest.mark.parametrize("port", [0, 70000])
    def test_rejects_bad_port(self, port):
        with pytest.raises(TransportCreationError) as exc_info:
            MulticastTransportFactory().create("239.255.255.250", port)
        assert exc_info.value.port == port


# ---------------------------------------------------------------------------
# TestStart
# ---------------------------------------------------------------------------


class TestStart:
    @pytest.mark.asyncio
    async def test_socket_failure_reported(self):
        transport, delegate = _make_transport()
        error = OSError(19, "No such device")

        with patch.object(MulticastTransport, "_create_socket", side_effect=error):
            transport.start()
            await asyncio.sleep(0.01)

        assert _states(delegate) == [TransportState.SETUP, TransportState.FAILED]
        assert delegate.transport_state_changed.call_args.args[2] is error
        assert transport.is_closed

    @pytest.mark.asyncio
    async def test_endpoint_opened_with_socket(self):
        transport, delegate = _make_transport()
        sock = MagicMock()
        datagram_transport = MagicMock()

        async def fake_endpoint(protocol_factory, sock=None):
            protocol = protocol_factory()
            protocol.connection_made(datagram_transport)
            return datagram_transport, protocol

        loop = asyncio.get_running_loop()
        with patch.object(MulticastTransport, "_create_socket", return_value=sock), patch.object(
            loop, "create_datagram_endpoint", side_effect=fake_endpoint
        ):
            transport.start()
            await asyncio.sleep(0.01)

        assert _states(delegate) == [TransportState.SETUP, TransportState.READY]
        transport.close()

    @pytest.mark.asyncio
    async def test_start_twice_is_ignored(self):
        transport, delegate = _make_transport()

        with patch.object(MulticastTransport, "_create_socket", side_effect=OSError("boom")):
            transport.start()
            transport.start()
            await asyncio.sleep(0.01)

        assert _states(delegate).count(TransportState.SETUP) == 1


# ---------------------------------------------------------------------------
# TestSend
# ---------------------------------------------------------------------------


class TestSend:
    def test_queued_until_ready(self):
        transport, delegate = _make_transport()
        datagram_transport = MagicMock()

        transport.send(b"one")
        transport.send(b"two")
        datagram_transport.sendto.assert_not_called()

        transport.connection_made(datagram_transport)

        assert [c.args for c in datagram_transport.sendto.call_args_list] == [
            (b"one", GROUP),
            (b"two", GROUP),
        ]
        assert _states(delegate) == [TransportState.READY]

    def test_sent_directly_when_ready(self):
        transport, _ = _make_transport()
        datagram_transport = MagicMock()
        transport.connection_made(datagram_transport)

        transport.send(b"query")

        datagram_transport.sendto.assert_called_once_with(b"query", GROUP)

    def test_dropped_after_close(self):
        transport, _ = _make_transport()
        datagram_transport = MagicMock()
        transport.connection_made(datagram_transport)
        transport.close()

        transport.send(b"late")

        datagram_transport.sendto.assert_not_called()

    def test_send_error_reported_as_failure(self):
        transport, delegate = _make_transport()
        datagram_transport = MagicMock()
        datagram_transport.sendto.side_effect = OSError("unreachable")
        transport.connection_made(datagram_transport)

        transport.send(b"query")

        assert _states(delegate)[-1] is TransportState.FAILED


# ---------------------------------------------------------------------------
# TestReceive
# ---------------------------------------------------------------------------


class TestReceive:
    def test_forwarded_when_ready(self):
        transport, delegate = _make_transport()
        transport.connection_made(MagicMock())

        transport.datagram_received(b"HTTP/1.1 200 OK\r\n\r\n", ("192.168.1.20", 1900))

        delegate.transport_received.assert_called_once_with(
            transport, b"HTTP/1.1 200 OK\r\n\r\n", ("192.168.1.20", 1900)
        )

    def test_ignored_after_close(self):
        transport, delegate = _make_transport()
        transport.connection_made(MagicMock())
        transport.close()

        transport.datagram_received(b"data", ("192.168.1.20", 1900))

        delegate.transport_received.assert_not_called()

    def test_error_received_fails_once(self):
        transport, delegate = _make_transport()
        transport.connection_made(MagicMock())

        transport.error_received(OSError("icmp unreachable"))
        transport.error_received(OSError("again"))

        assert _states(delegate).count(TransportState.FAILED) == 1

    def test_connection_lost_with_error_fails(self):
        transport, delegate = _make_transport()
        transport.connection_made(MagicMock())

        transport.connection_lost(OSError("gone"))

        assert _states(delegate)[-1] is TransportState.FAILED

    def test_connection_lost_without_error_is_quiet(self):
        transport, delegate = _make_transport()
        transport.connection_made(MagicMock())

        transport.connection_lost(None)

        assert _states(delegate) == [TransportState.READY]


# ---------------------------------------------------------------------------
# TestClose
# ---------------------------------------------------------------------------


class TestClose:
    def test_close_is_idempotent(self):
        transport, delegate = _make_transport()
        datagram_transport = MagicMock()
        transport.connection_made(datagram_transport)

        transport.close()
        transport.close()

        datagram_transport.close.assert_called_once()
        assert _states(delegate).count(TransportState.CANCELLED) == 1

    def test_close_after_failure(self):
        transport, delegate = _make_transport()
        transport.connection_made(MagicMock())
        transport.error_received(OSError("boom"))

        transport.close()

        assert _states(delegate)[-2:] == [TransportState.FAILED, TransportState.CANCELLED]

    def test_endpoint_arriving_after_close_is_closed(self):
        transport, _ = _make_transport()
        transport.close()
        datagram_transport = MagicMock()

        transport.connection_made(datagram_transport)

        datagram_transport.close.assert_called_once()
        assert transport.state is TransportState.CANCELLED
