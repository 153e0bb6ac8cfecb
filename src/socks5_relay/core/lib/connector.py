"""Outbound connection establishment.

CONNECT and UDP ASSOCIATE converge here; they only differ in the socket type
requested for the upstream side. The dial is bounded by a fixed timeout and
reported to the client before returning:

- success: ``SUCCEEDED`` reply, the connected socket is handed to the caller
- failure or timeout: ``HOST_UNREACHABLE`` reply, ``ConnectError`` raised

Name resolution goes through the system resolver (``getaddrinfo``) and is not
covered by the timeout.
"""

import socket
from typing import Final

from socks5_relay.core.exceptions import ConnectError
from socks5_relay.core.lib.protocol import ReplyStatus, Request, Transport, send_reply

CONNECT_TIMEOUT: Final = 10.0  # Seconds


def open_datagram(host: str, port: int, timeout: float) -> socket.socket:
    """Create a UDP socket connected to the first usable address of host."""
    last_error: OSError | None = None
    for family, sock_type, proto, _, addr in socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM):
        remote = socket.socket(family, sock_type, proto)
        try:
            remote.settimeout(timeout)
            remote.connect(addr)
        except OSError as e:
            remote.close()
            last_error = e
            continue
        return remote

    raise last_error or OSError(f"no usable address for {host}")


class OutboundConnector:
    """Dial proxy targets on behalf of one client connection."""

    def __init__(
        self,
        client: socket.socket,
        timeout: float = CONNECT_TIMEOUT,
        idle_timeout: float | None = None,
    ) -> None:
        """Initialize the connector.

        Args:
            client: Client connection that receives the reply
            timeout: Dial timeout in seconds
            idle_timeout: Timeout applied to the established socket, None blocks indefinitely
        """
        self.client = client
        self.timeout = timeout
        self.idle_timeout = idle_timeout

    def _dial(self, host: str, port: int, transport: Transport) -> socket.socket:
        if transport == Transport.DATAGRAM:
            return open_datagram(host, port, self.timeout)
        return socket.create_connection((host, port), timeout=self.timeout)

    def connect(self, request: Request, transport: Transport = Transport.STREAM) -> socket.socket:
        """Connect to the request target and reply to the client.

        Args:
            request: Decoded request naming the target
            transport: Socket type for the upstream connection

        Returns:
            socket.socket: The established upstream connection, owned by the caller

        Raises:
            ConnectError: If the target cannot be reached within the timeout
        """
        try:
            remote = self._dial(request.host, request.port, transport)
        except (OSError, UnicodeError) as e:
            send_reply(self.client, ReplyStatus.HOST_UNREACHABLE)
            raise ConnectError(request.target, e) from e

        try:
            remote.settimeout(self.idle_timeout)
            send_reply(self.client, ReplyStatus.SUCCEEDED)
        except OSError:
            remote.close()
            raise
        return remote
