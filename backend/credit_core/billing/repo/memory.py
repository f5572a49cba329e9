import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from credit_core.billing.domain.entities import Account, OperationType, Transaction
from credit_core.billing.shared.exceptions import AccountNotFoundError, DuplicateGrantError
from credit_core.utils.logger import logger
from .interfaces import BalanceMutation, LedgerStore, subscription_updates


class InMemoryLedgerStore(LedgerStore):
    """Process-local ledger store for tests and local development.

    One asyncio lock serialises every mutation, which gives the same
    check-and-write atomicity the Postgres store gets from its conditional
    UPDATE. It is not shared between processes.
    """

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._transactions: List[Transaction] = []
        self._by_id: Dict[str, Transaction] = {}
        self._idempotency: Dict[tuple, str] = {}
        self._lock = asyncio.Lock()

    def create_account(self, account_id: Optional[str] = None, credits: int = 0, **fields: Any) -> Account:
        account_id = account_id or str(uuid.uuid4())
        if account_id in self._accounts:
            raise ValueError(f"Account {account_id} already exists")
        account = Account(id=account_id, credits=credits, **fields)
        self._accounts[account_id] = account
        logger.debug(f"[MEMORY_STORE] Created account {account_id} with {credits} credits")
        return account

    async def get_account(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    def _record(
        self,
        account: Account,
        operation_type: OperationType,
        amount: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str],
        idempotency_key: Optional[str],
    ) -> BalanceMutation:
        balance_before = account.credits
        balance_after = balance_before + amount
        self._accounts[account.id] = replace(account, credits=balance_after)

        transaction = Transaction(
            id=str(uuid.uuid4()),
            account_id=account.id,
            operation_type=operation_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            created_at=datetime.now(timezone.utc),
            metadata=dict(metadata),
            reference_id=reference_id,
            idempotency_key=idempotency_key,
        )
        self._transactions.append(transaction)
        self._by_id[transaction.id] = transaction
        if idempotency_key:
            self._idempotency[(operation_type, idempotency_key)] = transaction.id

        return BalanceMutation(
            applied=True,
            balance_before=balance_before,
            balance_after=balance_after,
            transaction=transaction,
        )

    async def deduct_credits(
        self,
        account_id: str,
        operation_type: OperationType,
        cost: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str] = None,
    ) -> BalanceMutation:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if account.credits < cost:
                return BalanceMutation(applied=False, balance_before=account.credits, balance_after=account.credits)
            return self._record(account, operation_type, -cost, metadata, reference_id, None)

    async def add_credits(
        self,
        account_id: str,
        operation_type: OperationType,
        amount: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> BalanceMutation:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if idempotency_key and (operation_type, idempotency_key) in self._idempotency:
                raise DuplicateGrantError(operation_type.value, idempotency_key)
            return self._record(account, operation_type, amount, metadata, reference_id, idempotency_key)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._by_id.get(transaction_id)

    async def list_transactions(
        self,
        account_id: str,
        limit: int,
        operation_type: Optional[OperationType] = None,
    ) -> List[Transaction]:
        matches = [
            tx for tx in reversed(self._transactions)
            if tx.account_id == account_id and (operation_type is None or tx.operation_type == operation_type)
        ]
        return matches[:limit]

    async def find_transaction_by_idempotency_key(
        self,
        operation_type: OperationType,
        idempotency_key: str,
    ) -> Optional[Transaction]:
        transaction_id = self._idempotency.get((operation_type, idempotency_key))
        return self._by_id.get(transaction_id) if transaction_id else None

    async def find_account_id_by_stripe_ids(
        self,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        for account in self._accounts.values():
            if subscription_id and account.stripe_subscription_id == subscription_id:
                return account.id
            if customer_id and account.stripe_customer_id == customer_id:
                return account.id
        return None

    async def update_subscription(
        self,
        account_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        *,
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        subscription_status: Optional[str] = None,
        subscription_plan: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
    ) -> None:
        updates = subscription_updates(
            stripe_customer_id=stripe_customer_id,
            stripe_subscription_id=stripe_subscription_id,
            subscription_status=subscription_status,
            subscription_plan=subscription_plan,
            current_period_end=current_period_end,
        )
        if not updates:
            return
        async with self._lock:
            for account in list(self._accounts.values()):
                if (account_id and account.id == account_id) or (
                    subscription_id and account.stripe_subscription_id == subscription_id
                ):
                    self._accounts[account.id] = replace(account, **updates)
