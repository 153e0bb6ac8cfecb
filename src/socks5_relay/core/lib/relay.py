"""Bi-directional data relay between a client and its upstream connection.

Two structurally identical pumps run in their own threads, one per direction.
A pump copies bytes until its source reaches end-of-stream or fails, then
shuts down both halves of both sockets. That wakes the opposite pump, blocked
in ``recv`` on what was its source, with end-of-stream, so teardown cascades
without any shared signal. Closing the sockets is left to their owner.

There is no byte accounting or throttling; back-pressure comes from blocking
``sendall`` alone. Datagram sources are read with a 64 KiB buffer so a whole
UDP payload always arrives in one piece.

Example:
    with upstream:
        errors = relay(client, upstream)
"""

import contextlib
import socket
import threading
from typing import TYPE_CHECKING, Final

from loguru import logger

from socks5_relay.core.exceptions import RelayError

if TYPE_CHECKING:
    from loguru import Logger

BUFFER_SIZE: Final = 16 * 1024  # Bytes
DATAGRAM_BUFFER_SIZE: Final = 65535  # Largest UDP payload


def shutdown_socket(sock: socket.socket) -> None:
    """Shut down both directions, ignoring sockets that are already gone."""
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)


class Pump(threading.Thread):
    """Copy bytes from one socket to another until either side goes away."""

    def __init__(self, source: socket.socket, destination: socket.socket, direction: str) -> None:
        super().__init__(name=f"pump {direction}", daemon=True)
        self.source = source
        self.destination = destination
        self.direction = direction
        self.buffer_size = DATAGRAM_BUFFER_SIZE if source.type == socket.SOCK_DGRAM else BUFFER_SIZE
        self.error: RelayError | None = None

    def run(self) -> None:
        try:
            while data := self.source.recv(self.buffer_size):
                self.destination.sendall(data)
        except OSError as e:
            self.error = RelayError(self.direction, e)
        finally:
            shutdown_socket(self.source)
            shutdown_socket(self.destination)


def relay(
    client: socket.socket,
    upstream: socket.socket,
    log: "Logger" = logger,
) -> list[RelayError]:
    """Relay data in both directions and wait until both have finished.

    Args:
        client: Connection to the SOCKS client
        upstream: Established connection to the target
        log: Diagnostic sink

    Returns:
        list[RelayError]: I/O errors that ended a direction, if any
    """
    pumps = [
        Pump(client, upstream, "client->upstream"),
        Pump(upstream, client, "upstream->client"),
    ]
    for pump in pumps:
        pump.start()
    for pump in pumps:
        pump.join()

    errors = [pump.error for pump in pumps if pump.error is not None]
    for error in errors:
        log.debug(str(error))
    return errors
