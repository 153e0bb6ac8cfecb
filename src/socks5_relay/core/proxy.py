"""Public entry point to the SOCKS proxy server.

Example:
    from socks5_relay.core.proxy import SessionPolicy, run_server

    # Serve on localhost:1080, dropping sessions idle for five minutes
    run_server("127.0.0.1", 1080, SessionPolicy(idle_timeout=300))
"""

from .lib import SessionPolicy, SocksProxy, run_server

__all__ = ["run_server", "SessionPolicy", "SocksProxy"]
