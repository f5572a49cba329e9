from .interfaces import BalanceMutation, LedgerStore
from .memory import InMemoryLedgerStore
from .postgres import PostgresLedgerStore
from .supabase import SupabaseLedgerStore
from .factory import create_ledger_store

__all__ = [
    'BalanceMutation',
    'LedgerStore',
    'InMemoryLedgerStore',
    'PostgresLedgerStore',
    'SupabaseLedgerStore',
    'create_ledger_store',
]
