from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from credit_core.billing.domain.entities import Account, OperationType, Transaction


@dataclass(frozen=True)
class BalanceMutation:
    """Outcome of one atomic balance update.

    `applied` is False only for a conditional deduction that the balance could
    not cover; in that case no transaction row exists and `balance_after` is
    the untouched current balance.
    """
    applied: bool
    balance_before: int
    balance_after: int
    transaction: Optional[Transaction] = None


class LedgerStore(ABC):
    """Persistence contract for the ledger.

    Implementations own the atomicity of every balance mutation: the balance
    update and the transaction insert commit together or not at all.
    """

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def deduct_credits(
        self,
        account_id: str,
        operation_type: OperationType,
        cost: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str] = None,
    ) -> BalanceMutation:
        """Subtract `cost` only if the balance covers it.

        Raises:
            AccountNotFoundError: no account row exists.
        """

    @abstractmethod
    async def add_credits(
        self,
        account_id: str,
        operation_type: OperationType,
        amount: int,
        metadata: Dict[str, Any],
        reference_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> BalanceMutation:
        """Add `amount` and record it.

        Raises:
            AccountNotFoundError: no account row exists.
            DuplicateGrantError: a transaction with the same operation type
                and idempotency key is already committed.
        """

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        account_id: str,
        limit: int,
        operation_type: Optional[OperationType] = None,
    ) -> List[Transaction]:
        """Most recent first."""

    @abstractmethod
    async def find_transaction_by_idempotency_key(
        self,
        operation_type: OperationType,
        idempotency_key: str,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_account_id_by_stripe_ids(
        self,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        pass

    @abstractmethod
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
        """Update subscription columns, matched by account id or Stripe subscription id.

        Only non-None fields are written. Never touches `credits`.
        """

    async def close(self) -> None:
        return None


def subscription_updates(**fields: Any) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}
