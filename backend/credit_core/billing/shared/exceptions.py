from typing import Any, Optional

from credit_core.billing.domain.entities.results import ExecutionState


class BillingError(Exception):
    pass


class ConfigurationError(BillingError):
    pass


class UnknownOperationTypeError(ConfigurationError):
    def __init__(self, operation_type: Any):
        self.operation_type = operation_type
        super().__init__(f"No credit cost configured for operation type {operation_type!r}")


class CreditError(BillingError):
    pass


class InsufficientCreditsError(CreditError):
    def __init__(self, balance: int, required: Optional[int] = None, message: Optional[str] = None):
        self.balance = balance
        self.required = required
        if message is None:
            if required is not None:
                message = f"Insufficient credits. Balance: {balance} credits, Required: {required} credits"
            else:
                message = f"Insufficient credits. Balance: {balance} credits"
        super().__init__(message)


class AccountNotFoundError(CreditError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class TransactionNotFoundError(CreditError):
    def __init__(self, transaction_id: str, account_id: Optional[str] = None):
        self.transaction_id = transaction_id
        self.account_id = account_id
        super().__init__(f"Transaction {transaction_id} not found for account {account_id}")


class DuplicateGrantError(CreditError):
    def __init__(self, operation_type: str, idempotency_key: str):
        self.operation_type = operation_type
        self.idempotency_key = idempotency_key
        super().__init__(f"Grant already applied for {operation_type} with key {idempotency_key}")


class ExternalCallFailedError(BillingError):
    """The wrapped provider call failed after credits were deducted.

    Carries the deduction it was charged against and, when the compensating
    refund went through, the refund transaction id.
    """

    def __init__(
        self,
        message: str,
        account_id: str,
        operation_type: str,
        transaction_id: Optional[str] = None,
        refund_transaction_id: Optional[str] = None,
        cost: int = 0,
        result: Any = None,
    ):
        self.account_id = account_id
        self.operation_type = operation_type
        self.transaction_id = transaction_id
        self.refund_transaction_id = refund_transaction_id
        self.cost = cost
        self.result = result
        super().__init__(message)

    @property
    def refunded(self) -> bool:
        return self.refund_transaction_id is not None

    @property
    def state(self) -> ExecutionState:
        return ExecutionState.REFUNDED if self.refunded else ExecutionState.INCONSISTENT


class RefundFailedError(ExternalCallFailedError):
    """External call failed and the refund for it failed too.

    The account is short `cost` credits for work that never completed and
    needs manual reconciliation.
    """

    def __init__(self, *args, refund_error: Optional[str] = None, **kwargs):
        self.refund_error = refund_error
        super().__init__(*args, **kwargs)


class SubscriptionError(BillingError):
    pass


class WebhookError(BillingError):
    pass
