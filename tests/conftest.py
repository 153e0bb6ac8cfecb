"""
Shared fixtures for the proxy tests.

Everything runs on real sockets bound to 127.0.0.1 with ephemeral ports.
"""

import socket
import socketserver
import threading
import time

import pytest
from loguru import logger

from socks5_relay.core.lib import SessionPolicy, SocksProxy


class EchoHandler(socketserver.BaseRequestHandler):
    """Echo everything back until the peer closes."""

    def handle(self):
        while data := self.request.recv(4096):
            self.request.sendall(data)


class EchoServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


def serve_in_thread(server: socketserver.BaseServer) -> threading.Thread:
    thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    thread.start()
    return thread


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def recv_until_closed(sock: socket.socket) -> bytes:
    """Read until the peer closes; a reset counts as closed."""
    data = b""
    try:
        while chunk := sock.recv(4096):
            data += chunk
    except ConnectionResetError:
        pass
    return data


@pytest.fixture
def echo_server():
    """TCP echo server, yields its (host, port)."""
    server = EchoServer(("127.0.0.1", 0), EchoHandler)
    serve_in_thread(server)
    yield server.server_address
    server.shutdown()
    server.server_close()


@pytest.fixture
def udp_echo_server():
    """UDP echo socket, yields its (host, port)."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    stop = threading.Event()

    def run():
        sock.settimeout(0.05)
        while not stop.is_set():
            try:
                data, addr = sock.recvfrom(65535)
            except TimeoutError:
                continue
            sock.sendto(data, addr)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    yield sock.getsockname()
    stop.set()
    thread.join()
    sock.close()


@pytest.fixture
def closed_port():
    """A local TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def tcp_pair():
    """Connected (client, server-side) TCP sockets."""
    with socket.create_server(("127.0.0.1", 0)) as listener:
        client = socket.create_connection(listener.getsockname(), timeout=5.0)
        server_side, _ = listener.accept()
    server_side.settimeout(5.0)
    yield client, server_side
    client.close()
    server_side.close()


@pytest.fixture
def log_messages():
    """Collect every message logged while the test runs."""
    messages = []
    handler_id = logger.add(messages.append, format="{message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def make_proxy():
    """Factory starting SocksProxy instances that are shut down after the test."""
    servers = []

    def factory(policy: SessionPolicy | None = None, **kwargs) -> SocksProxy:
        server = SocksProxy(("127.0.0.1", 0), policy=policy, **kwargs)
        serve_in_thread(server)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.shutdown()
        server.server_close()


@pytest.fixture
def proxy_server(make_proxy):
    """Running proxy with a generous idle timeout so broken tests cannot hang."""
    return make_proxy(SessionPolicy(idle_timeout=5.0))


@pytest.fixture
def client(proxy_server):
    """Client connection to proxy_server."""
    sock = socket.create_connection(proxy_server.server_address, timeout=5.0)
    yield sock
    sock.close()
