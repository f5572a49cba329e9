import asyncio
from typing import Optional

from supabase import AsyncClient, create_async_client
from supabase.lib.client_options import AsyncClientOptions

from credit_core.utils.config import Configuration
from credit_core.utils.logger import logger

SUPABASE_READ_TIMEOUT = 60.0


class SupabaseConnection:
    """Lazily initialised async Supabase client.

    One instance per process, created and closed by the entry point. The
    service-role key is preferred because ledger writes bypass row level
    security.
    """

    def __init__(self, url: str, key: str, key_type: str = "SERVICE_ROLE_KEY"):
        self.url = url
        self.key = key
        self.key_type = key_type
        self._client: Optional[AsyncClient] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, settings: Configuration) -> "SupabaseConnection":
        key = settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_ANON_KEY
        if not settings.SUPABASE_URL or not key:
            logger.error("Missing required environment variables for Supabase connection")
            raise RuntimeError("SUPABASE_URL and a key (SERVICE_ROLE_KEY or ANON_KEY) environment variables must be set.")
        key_type = "SERVICE_ROLE_KEY" if settings.SUPABASE_SERVICE_ROLE_KEY else "ANON_KEY"
        return cls(settings.SUPABASE_URL, key, key_type)

    async def initialize(self) -> None:
        if self._client is not None:
            return
        async with self._lock:
            if self._client is not None:
                return
            try:
                options = AsyncClientOptions(
                    postgrest_client_timeout=SUPABASE_READ_TIMEOUT,
                    storage_client_timeout=SUPABASE_READ_TIMEOUT,
                    function_client_timeout=SUPABASE_READ_TIMEOUT,
                )
                self._client = await create_async_client(self.url, self.key, options=options)
                logger.info(f"Database connection initialized with Supabase using {self.key_type}")
            except Exception as e:
                logger.error(f"Database initialization error: {e}")
                raise RuntimeError(f"Failed to initialize database connection: {str(e)}") from e

    @property
    async def client(self) -> AsyncClient:
        if self._client is None:
            await self.initialize()
        return self._client

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            # supabase-py exposes the PostgREST session as `postgrest.aclose()`
            await self._client.postgrest.aclose()
        except Exception as e:
            logger.warning(f"Error during disconnect: {e}")
        finally:
            self._client = None
            logger.info("Database disconnected successfully")
