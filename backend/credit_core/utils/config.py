"""
Environment-driven settings for the credit core.

Values are read once from the process environment (and a local `.env` file,
if present). Nothing in here opens connections; clients are built by the
process entry point from these values.
"""
import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class EnvMode(Enum):
    LOCAL = "local"
    STAGING = "staging"
    PRODUCTION = "production"


class LedgerBackend(Enum):
    POSTGRES = "postgres"
    SUPABASE = "supabase"
    MEMORY = "memory"


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


class Configuration:
    ENV_MODE: EnvMode
    LEDGER_BACKEND: LedgerBackend

    DATABASE_URL: Optional[str]
    DATABASE_POOLER_URL: Optional[str]
    POSTGRES_PASSWORD: Optional[str]

    SUPABASE_URL: Optional[str]
    SUPABASE_ANON_KEY: Optional[str]
    SUPABASE_SERVICE_ROLE_KEY: Optional[str]

    STRIPE_SECRET_KEY: Optional[str]
    STRIPE_WEBHOOK_SECRET: Optional[str]
    STRIPE_PRICE_ID_STARTER: str
    STRIPE_PRICE_ID_PRO: str
    STRIPE_PRICE_ID_BUSINESS: str

    ADMIN_API_KEY: Optional[str]

    LOW_CREDIT_THRESHOLD: int
    IMAGE_GENERATION_TIMEOUT_SECONDS: int

    DB_POOL_SIZE: int
    DB_MAX_OVERFLOW: int
    DB_POOL_TIMEOUT: int
    DB_STATEMENT_TIMEOUT_MS: int

    def __init__(self):
        self.load()

    def load(self) -> None:
        env_mode = os.getenv("ENV_MODE", EnvMode.LOCAL.value).lower()
        try:
            self.ENV_MODE = EnvMode(env_mode)
        except ValueError:
            raise ValueError(f"Invalid ENV_MODE {env_mode!r}; expected one of {[m.value for m in EnvMode]}")

        default_backend = LedgerBackend.MEMORY.value if self.ENV_MODE == EnvMode.LOCAL else LedgerBackend.POSTGRES.value
        backend = os.getenv("LEDGER_BACKEND", default_backend).lower()
        try:
            self.LEDGER_BACKEND = LedgerBackend(backend)
        except ValueError:
            raise ValueError(f"Invalid LEDGER_BACKEND {backend!r}; expected one of {[b.value for b in LedgerBackend]}")

        self.DATABASE_URL = os.getenv("DATABASE_URL")
        self.DATABASE_POOLER_URL = os.getenv("DATABASE_POOLER_URL")
        self.POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")

        self.SUPABASE_URL = os.getenv("SUPABASE_URL")
        self.SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
        self.SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

        self.STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
        self.STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
        self.STRIPE_PRICE_ID_STARTER = os.getenv("STRIPE_PRICE_ID_STARTER", "")
        self.STRIPE_PRICE_ID_PRO = os.getenv("STRIPE_PRICE_ID_PRO", "")
        self.STRIPE_PRICE_ID_BUSINESS = os.getenv("STRIPE_PRICE_ID_BUSINESS", "")

        self.ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

        self.LOW_CREDIT_THRESHOLD = _get_int("LOW_CREDIT_THRESHOLD", 10)
        self.IMAGE_GENERATION_TIMEOUT_SECONDS = _get_int("IMAGE_GENERATION_TIMEOUT_SECONDS", 60)

        self.DB_POOL_SIZE = _get_int("DB_POOL_SIZE", 3)
        self.DB_MAX_OVERFLOW = _get_int("DB_MAX_OVERFLOW", 7)
        self.DB_POOL_TIMEOUT = _get_int("DB_POOL_TIMEOUT", 30)
        self.DB_STATEMENT_TIMEOUT_MS = _get_int("DB_STATEMENT_TIMEOUT_MS", 30000)

    @property
    def is_local(self) -> bool:
        return self.ENV_MODE == EnvMode.LOCAL


config = Configuration()
