"""
Ledger client package: keys, data model, operations and the local network.
"""
from .client import LedgerClient, LedgerSession
from .identity_store import IdentityStore
from .local_network import LocalLedgerNetwork

__all__ = [
    'LedgerClient',
    'LedgerSession',
    'IdentityStore',
    'LocalLedgerNetwork'
]
