"""Custom exceptions for the proxy server.

Every failure inside a session is one of these. They are raised by the
protocol, connector and relay components and caught once, at the session
boundary in ``SocksHandler.handle``, where they are logged and the session is
torn down. Nothing is retried and no error crosses into another session.

Which ones are preceded by a reply to the client:

- ``ProtocolError``: never, the framing itself is broken.
- ``AddressError``: ``ADDRESS_TYPE_NOT_SUPPORTED``.
- ``UnsupportedCommandError``: ``COMMAND_NOT_SUPPORTED``.
- ``ConnectError``: ``HOST_UNREACHABLE``.
- ``RelayError``: never, the affected side is simply closed.

Example:
    try:
        request = handler.read_request(Command.CONNECT)
    except AddressError as e:
        logger.warning(f"Rejected request: {e}")
"""


class ProxyError(Exception):
    """Base exception for proxy errors."""


class ProtocolError(ProxyError):
    """Raised when negotiation or request framing is malformed or truncated."""


class AddressError(ProxyError):
    """Raised when a request carries an unknown address type."""

    def __init__(self, address_type: int) -> None:
        super().__init__(f"address type {address_type:#04x} not supported")
        self.address_type = address_type


class UnsupportedCommandError(ProxyError):
    """Raised when a request carries an unknown command byte."""

    def __init__(self, command: int) -> None:
        super().__init__(f"command {command:#04x} not supported")
        self.command = command


class ConnectError(ProxyError):
    """Raised when the outbound connection cannot be established."""

    def __init__(self, target: str, reason: Exception | None = None) -> None:
        message = f"fail to connect to {target}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.target = target


class RelayError(ProxyError):
    """Raised when one relay direction fails with an I/O error."""

    def __init__(self, direction: str, reason: Exception) -> None:
        super().__init__(f"copy error ({direction}): {reason}")
        self.direction = direction
