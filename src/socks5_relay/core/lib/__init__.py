"""Core proxy library components."""

from .connector import CONNECT_TIMEOUT, OutboundConnector
from .protocol import AddressType, Command, ReplyStatus, Request, Transport, encode_address, encode_reply, read_address
from .proxy_server import SocksProxy, run_server
from .relay import Pump, relay
from .socks_handler import SessionPolicy, SessionState, SocksHandler

__all__ = [
    "AddressType",
    "Command",
    "CONNECT_TIMEOUT",
    "encode_address",
    "encode_reply",
    "OutboundConnector",
    "Pump",
    "read_address",
    "relay",
    "ReplyStatus",
    "Request",
    "run_server",
    "SessionPolicy",
    "SessionState",
    "SocksHandler",
    "SocksProxy",
    "Transport",
]
