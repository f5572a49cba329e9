"""
Shared pytest fixtures for the credit core tests
"""
import os
import sys

# Add backend to path FIRST
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Pin the settings the tests rely on before credit_core reads the environment
os.environ["ENV_MODE"] = "local"
os.environ["LEDGER_BACKEND"] = "memory"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_PRICE_ID_STARTER"] = "price_starter_test"
os.environ["STRIPE_PRICE_ID_PRO"] = "price_pro_test"
os.environ["STRIPE_PRICE_ID_BUSINESS"] = "price_business_test"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["LOW_CREDIT_THRESHOLD"] = "10"

import pytest
import pytest_asyncio

from credit_core.billing.credits.executor import OperationExecutor
from credit_core.billing.credits.ledger import LedgerEngine
from credit_core.billing.domain.entities import Account, OperationType
from credit_core.billing.repo.memory import InMemoryLedgerStore


# Register custom markers
def pytest_configure(config):
    config.addinivalue_line("markers", "billing: Ledger and executor tests")
    config.addinivalue_line("markers", "concurrency: Tests that race concurrent requests")


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def ledger(store: InMemoryLedgerStore) -> LedgerEngine:
    return LedgerEngine(store)


@pytest.fixture
def executor(ledger: LedgerEngine) -> OperationExecutor:
    return OperationExecutor(ledger)


@pytest_asyncio.fixture
async def account(store: InMemoryLedgerStore, ledger: LedgerEngine) -> Account:
    """Account funded with 100 credits through the ledger, so its log sums to its balance."""
    created = store.create_account()
    result = await ledger.add(created.id, OperationType.BONUS, 100, {"reason": "test_seed"})
    assert result.success
    return await store.get_account(created.id)
