"""Common utility functions."""


def format_target(host: str, port: int) -> str:
    """Join a host and port the way they appear in log lines.

    Args:
        host: IPv4/IPv6 literal or domain name
        port: Port number

    Returns:
        str: ``host:port``, with IPv6 literals in brackets
    """
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
