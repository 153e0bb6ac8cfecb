"""Command line interface modules.

This package provides the ``socks5-relay`` command: starting the proxy
server, configuring logging and session timeouts, and reporting errors.
"""
