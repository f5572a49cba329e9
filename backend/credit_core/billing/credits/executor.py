import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from credit_core.billing.domain.entities import ExecutionResult, ExecutionState, GrantResult, OperationType
from credit_core.billing.domain.entities.results import INSUFFICIENT_CREDITS
from credit_core.billing.shared.exceptions import (
    CreditError,
    DuplicateGrantError,
    ExternalCallFailedError,
    RefundFailedError,
)
from credit_core.utils.config import config
from credit_core.utils.logger import logger
from .idempotency import ERROR, REASON, REASON_GENERATION_FAILED, with_idempotency
from .ledger import LedgerEngine

T = TypeVar("T")


def _failure_message(result: Any) -> Optional[str]:
    """Error text for a provider result that reports failure, else None.

    Providers return either plain values or `{success, error}` shaped results
    (a mapping or an object with those attributes).
    """
    if isinstance(result, dict):
        if result.get('success') is False:
            return str(result.get('error') or 'external call reported failure')
        return None
    if getattr(result, 'success', None) is False:
        return str(getattr(result, 'error', None) or 'external call reported failure')
    return None


def with_deadline(call: Callable[[], Awaitable[T]], seconds: Optional[float] = None) -> Callable[[], Awaitable[T]]:
    """Wrap `call` so it raises asyncio.TimeoutError after `seconds`.

    Defaults to IMAGE_GENERATION_TIMEOUT_SECONDS.
    """
    if seconds is None:
        seconds = config.IMAGE_GENERATION_TIMEOUT_SECONDS

    async def bounded() -> T:
        return await asyncio.wait_for(call(), timeout=seconds)
    return bounded


class OperationExecutor:
    """Runs one billable unit of work: pre-check, deduct, call, settle.

    A failed call is compensated with a refund of the deduction. The executor
    does not retry and does not time calls out on its own; use
    `with_deadline` for a wall-clock budget.

    Cancelling `execute` after the deduction refunds before the
    cancellation propagates.
    """

    def __init__(self, ledger: LedgerEngine):
        self.ledger = ledger

    async def execute(
        self,
        account_id: str,
        operation_type: OperationType | str,
        external_call: Callable[[], Awaitable[T]],
        metadata: Optional[Dict[str, Any]] = None,
        custom_cost: Optional[int] = None,
    ) -> ExecutionResult[T]:
        op = OperationType.parse(operation_type)

        check = await self.ledger.check_affordable(account_id, op, custom_cost)
        if not check.available:
            logger.info(f"[EXECUTOR] Rejected {op.value} for {account_id}: needs {check.cost}, has {check.current_balance}")
            return ExecutionResult(
                state=ExecutionState.REJECTED,
                cost=check.cost,
                current_balance=check.current_balance,
                error_message="insufficient credits",
                error_code=INSUFFICIENT_CREDITS,
            )

        deduction = await self.ledger.deduct(account_id, op, metadata, custom_cost=custom_cost)
        if not deduction.success:
            # Balance moved between the check and the conditional update
            logger.info(f"[EXECUTOR] Deduction rejected for {account_id} ({deduction.error_code})")
            return ExecutionResult(
                state=ExecutionState.REJECTED,
                cost=deduction.cost,
                current_balance=deduction.balance_after,
                error_message=deduction.error_message,
                error_code=deduction.error_code,
            )

        cause: Optional[BaseException] = None
        try:
            value = await external_call()
            error_message = _failure_message(value)
        except asyncio.CancelledError:
            # The caller gave up (deadline, disconnect); the refund must still land
            logger.warning(f"[EXECUTOR] {op.value} cancelled for {account_id}, refunding {deduction.transaction_id}")
            await asyncio.shield(self._compensate(
                account_id, op, deduction.transaction_id, deduction.cost, "external call cancelled", None
            ))
            raise
        except asyncio.TimeoutError as e:
            value, error_message, cause = None, "external call timed out", e
        except Exception as e:
            value, error_message, cause = None, str(e) or type(e).__name__, e

        if error_message is None:
            logger.debug(f"[EXECUTOR] Settled {op.value} for {account_id}, transaction {deduction.transaction_id}")
            return ExecutionResult(
                state=ExecutionState.SETTLED,
                cost=deduction.cost,
                current_balance=deduction.balance_after,
                value=value,
                transaction_id=deduction.transaction_id,
            )

        logger.warning(f"[EXECUTOR] {op.value} failed for {account_id}, refunding {deduction.transaction_id}: {error_message}")
        error, chained = await self._compensate(account_id, op, deduction.transaction_id, deduction.cost, error_message, value)
        raise error from (chained or cause)

    async def _compensate(
        self,
        account_id: str,
        op: OperationType,
        transaction_id: str,
        cost: int,
        error_message: str,
        value: Any,
    ) -> Tuple[ExternalCallFailedError, Optional[BaseException]]:
        """Refund the deduction and build the error `execute` raises."""
        refund_error: Optional[str] = None
        refund_exc: Optional[BaseException] = None
        try:
            refund = await self.ledger.refund(
                account_id,
                transaction_id,
                {REASON: REASON_GENERATION_FAILED, ERROR: error_message},
            )
            if not refund.success:
                refund_error = refund.error_message or refund.error_code
        except Exception as e:
            refund = None
            refund_error = str(e) or type(e).__name__
            refund_exc = e

        if refund_error is None:
            return ExternalCallFailedError(
                f"{op.value} failed and was refunded: {error_message}",
                account_id=account_id,
                operation_type=op.value,
                transaction_id=transaction_id,
                refund_transaction_id=refund.transaction_id,
                cost=cost,
                result=value,
            ), None

        logger.error(
            f"[EXECUTOR] Refund failed for {account_id} after {op.value} failure",
            ledger_inconsistency=True,
            account_id=account_id,
            transaction_id=transaction_id,
            cost=cost,
            refund_error=refund_error,
        )
        return RefundFailedError(
            f"{op.value} failed and the refund of {cost} credits failed: {refund_error}",
            account_id=account_id,
            operation_type=op.value,
            transaction_id=transaction_id,
            cost=cost,
            result=value,
            refund_error=refund_error,
        ), refund_exc

    async def grant_if_new(
        self,
        account_id: str,
        operation_type: OperationType | str,
        amount: int,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GrantResult:
        """Apply an externally triggered grant at most once per key.

        Raises:
            ValueError: `idempotency_key` is empty.
            CreditError: the account does not exist.
        """
        if not idempotency_key:
            raise ValueError("idempotency_key is required for a grant")
        op = OperationType.parse(operation_type)

        existing = await self.ledger.store.find_transaction_by_idempotency_key(op, idempotency_key)
        if existing is not None:
            logger.info(f"[EXECUTOR] Grant {idempotency_key} already applied as {existing.id}, skipping")
            return GrantResult(applied=False, transaction_id=existing.id, balance_after=existing.balance_after)

        try:
            result = await self.ledger.add(account_id, op, amount, with_idempotency(metadata, idempotency_key))
        except DuplicateGrantError:
            # A concurrent delivery committed first
            existing = await self.ledger.store.find_transaction_by_idempotency_key(op, idempotency_key)
            logger.info(f"[EXECUTOR] Grant {idempotency_key} lost the race to a concurrent delivery")
            return GrantResult(
                applied=False,
                transaction_id=existing.id if existing else None,
                balance_after=existing.balance_after if existing else None,
            )

        if not result.success:
            raise CreditError(f"Grant {idempotency_key} failed for {account_id}: {result.error_message}")

        logger.info(f"[EXECUTOR] Granted {amount} {op.value} credits to {account_id} ({idempotency_key})")
        return GrantResult(applied=True, transaction_id=result.transaction_id, balance_after=result.balance_after)
