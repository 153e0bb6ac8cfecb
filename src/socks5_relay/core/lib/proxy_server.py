"""Threaded SOCKS proxy server.

Each accepted connection is serviced by its own daemon thread running a
``SocksHandler``; sessions share nothing but the diagnostic sink.

Example:
    # Listen on all interfaces, port 1080, until interrupted
    run_server("0.0.0.0", 1080)
"""

import socket
import socketserver
from typing import TYPE_CHECKING

from loguru import logger

from socks5_relay.core.utils.utils import format_target

from .socks_handler import SessionPolicy, SocksHandler

if TYPE_CHECKING:
    from loguru import Logger


class SocksProxy(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """SOCKS proxy server implementation."""

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 100

    def __init__(
        self,
        server_address: tuple[str, int],
        handler_class: type[socketserver.BaseRequestHandler] = SocksHandler,
        policy: SessionPolicy | None = None,
        log: "Logger" = logger,
    ) -> None:
        """Bind the listening socket.

        Args:
            server_address: (host, port) to listen on; port 0 picks a free port
            handler_class: Per-connection handler
            policy: Session timeouts handed to every handler
            log: Diagnostic sink handed to every handler
        """
        self.policy = policy or SessionPolicy()
        self.log = log
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        super().__init__(server_address, handler_class)

    @property
    def bound_address(self) -> str:
        """Listening address as ``host:port``."""
        host, port = self.server_address[:2]
        return format_target(host, port)

    def handle_error(self, request, client_address) -> None:
        """Log errors that escaped a handler instead of printing them."""
        self.log.opt(exception=True).error(f"Unhandled error for {client_address}")


def run_server(host: str, port: int, policy: SessionPolicy | None = None) -> None:
    """Serve SOCKS5 clients until interrupted.

    Args:
        host: Host address to bind to
        port: Port number to listen on
        policy: Session timeouts
    """
    server: SocksProxy | None = None
    try:
        server = SocksProxy((host, port), policy=policy)
        logger.info(f"SOCKS5 proxy listening on {server.bound_address}")
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopping")
    finally:
        if server:
            server.server_close()
            logger.info("Server closed")
