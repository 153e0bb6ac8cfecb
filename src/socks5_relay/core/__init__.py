"""Core proxy server implementation.

This package contains the core components of the SOCKS5 proxy server:
- Wire format codecs (requests, addresses, replies)
- Outbound connection establishment
- The per-connection protocol handler
- The bidirectional relay engine
- The threaded listening server
- Exception handling and logging configuration

The command-line interface lives in ``socks5_relay.cmd`` and only calls into
``socks5_relay.core.proxy``.
"""
