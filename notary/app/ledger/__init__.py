from .base import LedgerAnchor
from .jsonrpc import JsonRpcLedgerClient
from .memory import InMemoryLedger

__all__ = [
    "LedgerAnchor",
    "JsonRpcLedgerClient",
    "InMemoryLedger",
]
