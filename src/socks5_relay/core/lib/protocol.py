"""SOCKS5 wire format according to RFC 1928.

This module holds everything that knows about bytes on the wire:
- Protocol constants and the command, address type and reply code enums
- The parsed ``Request`` model
- Exact-length reads from a blocking socket
- Address decoding (IPv4, IPv6 and domain names) and its inverse
- Reply encoding

The request is formed as follows::

    +----+-----+-------+------+----------+----------+
    |VER | CMD |  RSV  | ATYP | DST.ADDR | DST.PORT |
    +----+-----+-------+------+----------+----------+
    | 1  |  1  | X'00' |  1   | Variable |    2     |
    +----+-----+-------+------+----------+----------+

Replies always carry an IPv4 bound address, so they are exactly 10 bytes.

Example:
    request_bytes = encode_address("example.com", 443)
    reply = encode_reply(ReplyStatus.SUCCEEDED, "127.0.0.1", 1080)
"""

import enum
import ipaddress
import socket
import struct
from dataclasses import dataclass
from typing import Final

from socks5_relay.core.exceptions import AddressError, ProtocolError
from socks5_relay.core.utils.utils import format_target

# SOCKS protocol constants
SOCKS_VERSION: Final = 5
NO_AUTH: Final = 0
RESERVED: Final = 0
MAX_DOMAIN_LENGTH: Final = 255
REPLY_LENGTH: Final = 10

# Reported when the local address has no IPv4 form
UNSPECIFIED_IPV4: Final = "0.0.0.0"


class Command(enum.IntEnum):
    """Request commands."""

    CONNECT = 1
    BIND = 2
    UDP_ASSOCIATE = 3


class AddressType(enum.IntEnum):
    """Address type tags (ATYP)."""

    IPV4 = 1
    DOMAIN = 3
    IPV6 = 4


class ReplyStatus(enum.IntEnum):
    """Reply field (REP) values."""

    SUCCEEDED = 0
    SERVER_FAILURE = 1
    NOT_ALLOWED = 2
    NETWORK_UNREACHABLE = 3
    HOST_UNREACHABLE = 4
    CONNECTION_REFUSED = 5
    TTL_EXPIRED = 6
    COMMAND_NOT_SUPPORTED = 7
    ADDRESS_TYPE_NOT_SUPPORTED = 8


class Transport(enum.IntEnum):
    """Socket type used for the outbound connection."""

    STREAM = socket.SOCK_STREAM
    DATAGRAM = socket.SOCK_DGRAM


@dataclass(frozen=True)
class Request:
    """A decoded proxy request.

    Attributes:
        command: Requested command
        address_type: How the target address was encoded
        host: Target host in textual form
        port: Target port
    """

    command: Command
    address_type: AddressType
    host: str
    port: int

    @property
    def target(self) -> str:
        """Target as ``host:port``."""
        return format_target(self.host, self.port)


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes from a blocking socket.

    Raises:
        ProtocolError: If the peer closes the connection first
    """
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            msg = f"connection closed after {len(data)} of {size} bytes"
            raise ProtocolError(msg)
        data += chunk
    return bytes(data)


def read_address(sock: socket.socket) -> tuple[AddressType, str, int]:
    """Read ATYP, DST.ADDR and DST.PORT from the socket.

    Domain names are decoded with ``surrogateescape`` so arbitrary bytes survive
    unchanged; no character set validation is done.

    Returns:
        tuple: (address type, host, port)

    Raises:
        AddressError: If the address type is not IPv4, IPv6 or domain name
        ProtocolError: If the stream ends mid-address
    """
    (addr_type,) = recv_exactly(sock, 1)

    if addr_type == AddressType.IPV4:
        host = socket.inet_ntoa(recv_exactly(sock, 4))
    elif addr_type == AddressType.IPV6:
        host = socket.inet_ntop(socket.AF_INET6, recv_exactly(sock, 16))
    elif addr_type == AddressType.DOMAIN:
        (length,) = recv_exactly(sock, 1)
        host = recv_exactly(sock, length).decode("utf-8", "surrogateescape")
    else:
        raise AddressError(addr_type)

    (port,) = struct.unpack("!H", recv_exactly(sock, 2))
    return AddressType(addr_type), host, port


def encode_address(host: str, port: int, addr_type: AddressType | None = None) -> bytes:
    """Encode ATYP, address and port, the inverse of ``read_address``.

    The address type is guessed from ``host`` unless given explicitly.

    Raises:
        ValueError: If a domain name is empty or longer than 255 bytes
    """
    if addr_type is None:
        try:
            addr_type = AddressType.IPV6 if ipaddress.ip_address(host).version == 6 else AddressType.IPV4
        except ValueError:
            addr_type = AddressType.DOMAIN

    if addr_type == AddressType.IPV4:
        body = socket.inet_aton(host)
    elif addr_type == AddressType.IPV6:
        body = socket.inet_pton(socket.AF_INET6, host)
    else:
        raw = host.encode("utf-8", "surrogateescape")
        if not 1 <= len(raw) <= MAX_DOMAIN_LENGTH:
            msg = f"domain name must be 1-{MAX_DOMAIN_LENGTH} bytes, got {len(raw)}"
            raise ValueError(msg)
        body = struct.pack("!B", len(raw)) + raw

    return struct.pack("!B", addr_type) + body + struct.pack("!H", port)


def _as_ipv4(addr: str) -> str:
    """Map a local socket address to the IPv4 literal reported in replies."""
    try:
        ip = ipaddress.ip_address(addr)
    except ValueError:
        return UNSPECIFIED_IPV4
    if ip.version == 6:
        mapped = ip.ipv4_mapped
        return str(mapped) if mapped else UNSPECIFIED_IPV4
    return str(ip)


def encode_reply(status: int, bind_addr: str = UNSPECIFIED_IPV4, bind_port: int = 0) -> bytes:
    """Build a reply message.

    The bound address is always reported as IPv4: callers pass the server's own
    local address, not a per-target bound endpoint.

    Args:
        status: One of ``ReplyStatus``
        bind_addr: Local address of the client connection
        bind_port: Local port of the client connection

    Returns:
        bytes: ``[VER, REP, RSV, ATYP=1, BND.ADDR(4), BND.PORT(2)]``
    """
    response = struct.pack("!BBBB", SOCKS_VERSION, status, RESERVED, AddressType.IPV4)
    return response + socket.inet_aton(_as_ipv4(bind_addr)) + struct.pack("!H", bind_port)


def send_reply(sock: socket.socket, status: int) -> None:
    """Send a reply reporting the socket's own local address as bound address."""
    bind_addr, bind_port = sock.getsockname()[:2]
    sock.sendall(encode_reply(status, bind_addr, bind_port))
