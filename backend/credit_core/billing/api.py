import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request

from credit_core.billing.credits.executor import OperationExecutor
from credit_core.billing.credits.ledger import LedgerEngine
from credit_core.billing.external.stripe.webhooks import WebhookService
from credit_core.billing.repo import LedgerStore, create_ledger_store
from credit_core.services.db import Database
from credit_core.services.supabase import SupabaseConnection
from credit_core.utils.config import Configuration, LedgerBackend, config
from credit_core.utils.logger import logger, structlog
from .endpoints.credits import router as credits_router
from .endpoints.webhooks import router as webhooks_router

router = APIRouter(prefix="/billing", tags=["billing"])

router.include_router(credits_router, include_in_schema=True)
router.include_router(webhooks_router, include_in_schema=True)


@router.get("/health")
async def health_check(request: Request) -> Dict:
    database: Optional[Database] = request.app.state.database
    if database is not None:
        try:
            await database.ping()
        except Exception as e:
            logger.error(f"Failed health check: {e}")
            raise HTTPException(status_code=503, detail="Database unavailable")
    return {
        'status': 'ok',
        'env_mode': request.app.state.settings.ENV_MODE.value,
        'ledger_backend': request.app.state.settings.LEDGER_BACKEND.value,
    }


def create_app(settings: Configuration = config, store: Optional[LedgerStore] = None) -> FastAPI:
    """Build the billing API.

    Connection handles, the ledger and the executor are created in the
    lifespan and kept on `app.state`. Pass `store` to run against an
    already constructed ledger store.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.debug(f"Starting up billing API in {settings.ENV_MODE.value} mode")
        database: Optional[Database] = None
        supabase: Optional[SupabaseConnection] = None
        ledger_store = store

        if ledger_store is None:
            if settings.LEDGER_BACKEND == LedgerBackend.POSTGRES:
                database = Database.from_config(settings)
                database.initialize()
            elif settings.LEDGER_BACKEND == LedgerBackend.SUPABASE:
                supabase = SupabaseConnection.from_config(settings)
                await supabase.initialize()
            ledger_store = create_ledger_store(settings, database, supabase)

        ledger = LedgerEngine(ledger_store)
        executor = OperationExecutor(ledger)

        app.state.settings = settings
        app.state.database = database
        app.state.store = ledger_store
        app.state.ledger = ledger
        app.state.executor = executor
        app.state.webhook_service = WebhookService(executor, ledger_store, settings)

        try:
            yield
        finally:
            logger.debug("Shutting down billing API")
            await ledger_store.close()
            if supabase is not None:
                await supabase.close()
            if database is not None:
                await database.dispose()

    app = FastAPI(lifespan=lifespan)

    @app.middleware("http")
    async def log_requests_middleware(request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = str(uuid.uuid4())
        start_time = time.time()
        method = request.method
        path = request.url.path

        structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)
        logger.debug(f"Request started: {method} {path}")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {method} {path} | Error: {e} | Time: {time.time() - start_time:.2f}s")
            raise
        logger.debug(f"Request completed: {method} {path} | Status: {response.status_code} | Time: {time.time() - start_time:.2f}s")
        return response

    app.include_router(router, prefix="/api")
    return app
