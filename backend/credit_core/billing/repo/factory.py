from typing import Optional

from credit_core.services.db import Database
from credit_core.services.supabase import SupabaseConnection
from credit_core.utils.config import Configuration, LedgerBackend
from credit_core.utils.logger import logger
from .interfaces import LedgerStore
from .memory import InMemoryLedgerStore
from .postgres import PostgresLedgerStore
from .supabase import SupabaseLedgerStore


def create_ledger_store(
    settings: Configuration,
    database: Optional[Database] = None,
    supabase: Optional[SupabaseConnection] = None,
) -> LedgerStore:
    """Pick the store for `settings.LEDGER_BACKEND`.

    Connection handles are passed in by the caller so their lifetime stays
    with the entry point; if one is missing it is built from `settings`.
    """
    backend = settings.LEDGER_BACKEND

    if backend == LedgerBackend.POSTGRES:
        database = database or Database.from_config(settings)
        logger.info("[LEDGER] Using Postgres ledger store")
        return PostgresLedgerStore(database)

    if backend == LedgerBackend.SUPABASE:
        supabase = supabase or SupabaseConnection.from_config(settings)
        logger.info("[LEDGER] Using Supabase ledger store")
        return SupabaseLedgerStore(supabase)

    if not settings.is_local:
        logger.warning(f"[LEDGER] In-memory ledger store selected in {settings.ENV_MODE.value}; balances are not persisted")
    else:
        logger.info("[LEDGER] Using in-memory ledger store")
    return InMemoryLedgerStore()
