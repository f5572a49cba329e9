from typing import Any, Dict, List, Optional

from credit_core.billing.config import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT
from credit_core.billing.domain.entities import (
    AdditionResult,
    CreditCheckResult,
    DeductionResult,
    OperationType,
    RefundResult,
    Transaction,
)
from credit_core.billing.domain.entities.results import (
    ACCOUNT_NOT_FOUND,
    INSUFFICIENT_CREDITS,
    TRANSACTION_NOT_FOUND,
)
from credit_core.billing.repo.interfaces import LedgerStore
from credit_core.billing.shared.exceptions import AccountNotFoundError, DuplicateGrantError
from credit_core.utils.logger import logger
from .calculator import get_operation_cost
from .idempotency import get_idempotency_key, normalize_reference, refund_key, refund_metadata, with_idempotency


class LedgerEngine:
    """Authoritative credit balance and append-only transaction log per account.

    Expected failures (insufficient credits, unknown account, unknown
    transaction) come back as result values with an `error_code`. Anything
    the store raises beyond that propagates.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    async def check_affordable(
        self,
        account_id: str,
        operation_type: OperationType | str,
        custom_cost: Optional[int] = None,
    ) -> CreditCheckResult:
        cost = get_operation_cost(operation_type, custom_cost)
        account = await self.store.get_account(account_id)
        if account is None:
            return CreditCheckResult(available=False, cost=cost, current_balance=0)
        return CreditCheckResult(available=account.can_afford(cost), cost=cost, current_balance=account.credits)

    async def deduct(
        self,
        account_id: str,
        operation_type: OperationType | str,
        metadata: Optional[Dict[str, Any]] = None,
        reference_id: Optional[str] = None,
        custom_cost: Optional[int] = None,
    ) -> DeductionResult:
        cost = get_operation_cost(operation_type, custom_cost)
        op = OperationType.parse(operation_type)
        reference_id, metadata = normalize_reference(reference_id, metadata)

        try:
            mutation = await self.store.deduct_credits(account_id, op, cost, metadata, reference_id)
        except AccountNotFoundError as e:
            logger.warning(f"[LEDGER] Deduct {op.value} for unknown account {account_id}")
            return DeductionResult(
                success=False,
                balance_after=0,
                cost=cost,
                error_message=str(e),
                error_code=ACCOUNT_NOT_FOUND,
            )

        if not mutation.applied:
            logger.info(
                f"[LEDGER] Insufficient credits for {account_id}: {op.value} costs {cost}, balance {mutation.balance_after}"
            )
            return DeductionResult(
                success=False,
                balance_after=mutation.balance_after,
                cost=cost,
                error_message="insufficient credits",
                error_code=INSUFFICIENT_CREDITS,
            )

        logger.info(
            f"[LEDGER] Deducted {cost} credits from {account_id} for {op.value}",
            balance_after=mutation.balance_after,
            transaction_id=mutation.transaction.id,
        )
        return DeductionResult(
            success=True,
            balance_after=mutation.balance_after,
            cost=cost,
            transaction_id=mutation.transaction.id,
        )

    async def add(
        self,
        account_id: str,
        operation_type: OperationType | str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None,
        reference_id: Optional[str] = None,
    ) -> AdditionResult:
        """Credit `amount` to the account. The sign is not checked.

        An `idempotency_key` in `metadata` is written to the indexed column
        too; a second add with the same operation type and key raises
        `DuplicateGrantError` from the store.
        """
        op = OperationType.parse(operation_type)
        reference_id, metadata = normalize_reference(reference_id, metadata)
        idempotency_key = get_idempotency_key(metadata)

        try:
            mutation = await self.store.add_credits(
                account_id, op, amount, metadata, reference_id, idempotency_key
            )
        except AccountNotFoundError as e:
            logger.warning(f"[LEDGER] Add {amount} {op.value} for unknown account {account_id}")
            return AdditionResult(
                success=False,
                balance_after=0,
                error_message=str(e),
                error_code=ACCOUNT_NOT_FOUND,
            )

        logger.info(
            f"[LEDGER] Added {amount} credits to {account_id} for {op.value}",
            balance_after=mutation.balance_after,
            transaction_id=mutation.transaction.id,
        )
        return AdditionResult(
            success=True,
            balance_after=mutation.balance_after,
            transaction_id=mutation.transaction.id,
        )

    async def refund(
        self,
        account_id: str,
        original_transaction_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RefundResult:
        original = await self.store.get_transaction(original_transaction_id)
        if original is None or original.account_id != account_id:
            logger.warning(f"[LEDGER] Refund of unknown transaction {original_transaction_id} for {account_id}")
            return RefundResult(
                success=False,
                balance_after=await self.get_balance(account_id),
                error_message=f"Transaction {original_transaction_id} not found",
                error_code=TRANSACTION_NOT_FOUND,
            )

        key = refund_key(original.id)
        try:
            result = await self.add(
                account_id,
                OperationType.REFUND,
                abs(original.amount),
                with_idempotency(refund_metadata(original.id, original.operation_type.value, metadata), key),
                reference_id=original.id,
            )
        except DuplicateGrantError:
            existing = await self.store.find_transaction_by_idempotency_key(OperationType.REFUND, key)
            logger.info(f"[LEDGER] Transaction {original.id} was already refunded, skipping")
            return RefundResult(
                success=True,
                balance_after=await self.get_balance(account_id),
                transaction_id=existing.id if existing else None,
            )

        if result.success:
            logger.info(f"[LEDGER] Refunded {abs(original.amount)} credits to {account_id} for {original.id}")
        return result

    async def get_balance(self, account_id: str) -> int:
        account = await self.store.get_account(account_id)
        return account.credits if account else 0

    async def get_history(self, account_id: str, limit: int = HISTORY_DEFAULT_LIMIT) -> List[Transaction]:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= HISTORY_MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {HISTORY_MAX_LIMIT}, got {limit!r}")
        return await self.store.list_transactions(account_id, limit)
