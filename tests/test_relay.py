"""
Tests for the relay engine.
"""

import socket
import threading

import pytest
from conftest import recv_until_closed

from socks5_relay.core.exceptions import RelayError
from socks5_relay.core.lib.relay import BUFFER_SIZE, DATAGRAM_BUFFER_SIZE, Pump, relay


@pytest.fixture
def sockets():
    """(client peer, client, upstream, upstream peer); relay runs between the middle two."""
    client_peer, client = socket.socketpair()
    upstream, upstream_peer = socket.socketpair()
    for sock in (client_peer, upstream_peer):
        sock.settimeout(5.0)
    yield client_peer, client, upstream, upstream_peer
    for sock in (client_peer, client, upstream, upstream_peer):
        sock.close()


def start_relay(client, upstream):
    result = {}
    thread = threading.Thread(target=lambda: result.setdefault("errors", relay(client, upstream)), daemon=True)
    thread.start()
    return thread, result


class TestRelay:
    """Test cases for relay."""

    def test_both_directions(self, sockets):
        """Bytes flow client to upstream and back."""
        client_peer, client, upstream, upstream_peer = sockets
        thread, _ = start_relay(client, upstream)

        client_peer.sendall(b"ping")
        assert upstream_peer.recv(16) == b"ping"
        upstream_peer.sendall(b"pong")
        assert client_peer.recv(16) == b"pong"

        client_peer.close()
        thread.join(timeout=5.0)
        assert not thread.is_alive()

    def test_client_close_cascades_to_upstream(self, sockets):
        """When the client goes away the upstream peer sees end-of-stream."""
        client_peer, client, upstream, upstream_peer = sockets
        thread, result = start_relay(client, upstream)

        client_peer.sendall(b"last words")
        client_peer.close()

        assert recv_until_closed(upstream_peer) == b"last words"
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert result["errors"] == []

    def test_upstream_close_cascades_to_client(self, sockets):
        """When the target goes away the client sees end-of-stream."""
        client_peer, client, upstream, upstream_peer = sockets
        thread, _ = start_relay(client, upstream)

        upstream_peer.sendall(b"bye")
        upstream_peer.close()

        assert recv_until_closed(client_peer) == b"bye"
        thread.join(timeout=5.0)
        assert not thread.is_alive()

    def test_large_transfer(self, sockets):
        """Payloads larger than the buffer arrive complete and in order."""
        client_peer, client, upstream, upstream_peer = sockets
        thread, _ = start_relay(client, upstream)
        payload = bytes(range(256)) * 4096

        received = bytearray()
        reader = threading.Thread(target=lambda: received.extend(recv_until_closed(upstream_peer)), daemon=True)
        reader.start()
        client_peer.sendall(payload)
        client_peer.close()

        reader.join(timeout=5.0)
        thread.join(timeout=5.0)
        assert bytes(received) == payload

    def test_io_error_is_reported(self, sockets):
        """A failing direction is returned as a RelayError and still tears everything down."""
        client_peer, client, upstream, upstream_peer = sockets
        client.settimeout(0.05)
        thread, result = start_relay(client, upstream)

        assert recv_until_closed(upstream_peer) == b""
        thread.join(timeout=5.0)
        assert not thread.is_alive()

        errors = result["errors"]
        assert errors
        assert all(isinstance(error, RelayError) for error in errors)
        assert errors[0].direction == "client->upstream"


class TestPump:
    """Test cases for Pump."""

    def test_pump_shuts_down_destination(self, sockets):
        """A pump ending on end-of-stream shuts down its destination for the other direction."""
        client_peer, client, upstream, upstream_peer = sockets
        pump = Pump(client, upstream, "client->upstream")
        pump.start()

        client_peer.shutdown(socket.SHUT_WR)
        pump.join(timeout=5.0)

        assert not pump.is_alive()
        assert pump.error is None
        assert upstream.recv(16) == b""

    def test_buffer_size_follows_socket_type(self, sockets):
        """Stream sources use the regular buffer, datagram sources one large enough for any UDP payload."""
        _, client, upstream, _ = sockets
        assert Pump(client, upstream, "client->upstream").buffer_size == BUFFER_SIZE

        datagram, datagram_peer = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
        with datagram, datagram_peer:
            assert Pump(datagram, client, "upstream->client").buffer_size == DATAGRAM_BUFFER_SIZE

    def test_large_datagram_arrives_whole(self, sockets):
        """A datagram bigger than the stream buffer is relayed without truncation."""
        client_peer, client, _, _ = sockets
        upstream, upstream_peer = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
        upstream_peer.settimeout(5.0)
        payload = bytes(range(256)) * 160

        with upstream, upstream_peer:
            thread, _ = start_relay(client, upstream)
            upstream_peer.send(payload)

            received = bytearray()
            while len(received) < len(payload):
                received += client_peer.recv(len(payload) - len(received))
            assert bytes(received) == payload

            client_peer.close()
            thread.join(timeout=5.0)
            assert not thread.is_alive()
