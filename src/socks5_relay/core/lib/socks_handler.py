"""SOCKS protocol handler implementation for the proxy server.

This module implements the per-connection side of RFC 1928:
- Method negotiation (always "no authentication required")
- Request header parsing and command dispatch
- CONNECT over TCP
- UDP ASSOCIATE relayed as a byte stream over a connected UDP socket
- BIND, which is recognised but not implemented

One ``SocksHandler`` instance owns one client connection for its whole life:
negotiation, then the request, then connect and reply, then relay. Any
``ProxyError`` ends the session at the ``handle`` boundary; ``socketserver``
closes the client socket once ``handle`` returns.

Example:
    # The handler is used by the SocksProxy server class
    server = SocksProxy((host, port), SocksHandler)
    server.serve_forever()
"""

import enum
import socket
import socketserver
import struct
from dataclasses import dataclass

from loguru import logger

from socks5_relay.core.exceptions import AddressError, ProtocolError, ProxyError, UnsupportedCommandError
from socks5_relay.core.lib.connector import CONNECT_TIMEOUT, OutboundConnector
from socks5_relay.core.lib.protocol import (
    NO_AUTH,
    SOCKS_VERSION,
    Command,
    ReplyStatus,
    Request,
    Transport,
    read_address,
    recv_exactly,
    send_reply,
)
from socks5_relay.core.lib.relay import relay
from socks5_relay.core.utils.utils import format_target


class SessionState(enum.Enum):
    """Protocol phase of a session."""

    NEGOTIATING = "negotiating"
    REQUESTING = "requesting"
    CONNECTING = "connecting"
    RELAYING = "relaying"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionPolicy:
    """Timeouts applied to every session.

    Attributes:
        connect_timeout: Seconds allowed for the outbound dial
        idle_timeout: Seconds any other blocking read or write may wait, None waits forever
    """

    connect_timeout: float = CONNECT_TIMEOUT
    idle_timeout: float | None = None


class SocksHandler(socketserver.BaseRequestHandler):
    """Handle incoming SOCKS5 connections."""

    request: socket.socket

    def setup(self) -> None:
        """Pick up the policy and diagnostic sink from the server."""
        self.policy: SessionPolicy = getattr(self.server, "policy", None) or SessionPolicy()
        self.log = getattr(self.server, "log", logger).bind(client=format_target(*self.client_address[:2]))
        self.state = SessionState.NEGOTIATING
        self.method: int | None = None
        self.request.settimeout(self.policy.idle_timeout)

    def negotiate(self) -> None:
        """Perform SOCKS5 method negotiation.

        The offered methods are read but not checked: "no authentication" is
        selected even when the client did not offer it.

        Raises:
            ProtocolError: On a short greeting or a version other than 5
        """
        self.state = SessionState.NEGOTIATING
        version, nmethods = struct.unpack("!BB", recv_exactly(self.request, 2))
        self.log.debug(f"nego: version={version} nmethods={nmethods}")
        if version != SOCKS_VERSION:
            msg = f"only support socks5, got version {version}"
            raise ProtocolError(msg)

        recv_exactly(self.request, nmethods)

        self.method = NO_AUTH
        self.request.sendall(struct.pack("!BB", SOCKS_VERSION, self.method))

    def read_request(self, command: Command) -> Request:
        """Decode the target address, rejecting unknown address types."""
        try:
            addr_type, host, port = read_address(self.request)
        except AddressError:
            send_reply(self.request, ReplyStatus.ADDRESS_TYPE_NOT_SUPPORTED)
            raise
        return Request(command, addr_type, host, port)

    def dispatch(self) -> socket.socket | None:
        """Read the request header and run the matching command.

        Returns:
            socket.socket | None: Upstream connection to relay, None when there is nothing to relay

        Raises:
            ProtocolError: If the header is truncated
            UnsupportedCommandError: For an unknown command byte
        """
        self.state = SessionState.REQUESTING
        _, command, _ = struct.unpack("!BBB", recv_exactly(self.request, 3))

        if command == Command.CONNECT:
            return self.handle_connect()
        if command == Command.BIND:
            return self.handle_bind()
        if command == Command.UDP_ASSOCIATE:
            return self.handle_udp_associate()

        send_reply(self.request, ReplyStatus.COMMAND_NOT_SUPPORTED)
        raise UnsupportedCommandError(command)

    def _open_upstream(self, request: Request, transport: Transport) -> socket.socket:
        self.state = SessionState.CONNECTING
        connector = OutboundConnector(self.request, self.policy.connect_timeout, self.policy.idle_timeout)
        upstream = connector.connect(request, transport)
        self.log.info(f"{request.command.name} {request.target}")
        return upstream

    def handle_connect(self) -> socket.socket:
        """Handle CONNECT command."""
        request = self.read_request(Command.CONNECT)
        return self._open_upstream(request, Transport.STREAM)

    def handle_bind(self) -> None:
        """Handle BIND command (passive mode), which is not implemented.

        No reply is sent; the session ends and the connection is closed.
        """
        self.log.warning("BIND is not implemented, closing connection")

    def handle_udp_associate(self) -> socket.socket:
        """Handle UDP ASSOCIATE command.

        Reads the ``[RSV(2), FRAG(1)]`` prefix, then proceeds like CONNECT with a
        datagram upstream. Data is relayed as a plain byte stream; per-datagram
        headers are not added or stripped.
        """
        self.log.info("UDP Associate")
        _, frag = struct.unpack("!HB", recv_exactly(self.request, 3))
        if frag != 0:
            self.log.warning(f"does not support fragmentation (FRAG={frag}), ignoring")

        request = self.read_request(Command.UDP_ASSOCIATE)
        return self._open_upstream(request, Transport.DATAGRAM)

    def handle(self) -> None:
        """Handle incoming SOCKS5 connection."""
        self.log.debug("connection started")
        try:
            self.negotiate()
            upstream = self.dispatch()
            if upstream is None:
                return

            with upstream:
                self.state = SessionState.RELAYING
                relay(self.request, upstream, self.log)
        except ProxyError as e:
            self.log.warning(f"session failed while {self.state.value}: {e}")
        except OSError as e:
            self.log.debug(f"connection error while {self.state.value}: {e}")
        finally:
            self.state = SessionState.CLOSED
            self.log.debug("connection ended")
