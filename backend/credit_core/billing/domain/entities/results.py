from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")

INSUFFICIENT_CREDITS = "insufficient_credits"
ACCOUNT_NOT_FOUND = "account_not_found"
TRANSACTION_NOT_FOUND = "transaction_not_found"


@dataclass(frozen=True)
class CreditCheckResult:
    available: bool
    cost: int
    current_balance: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'available': self.available,
            'cost': self.cost,
            'current_balance': self.current_balance,
        }


@dataclass(frozen=True)
class DeductionResult:
    success: bool
    balance_after: int
    cost: int
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def insufficient_credits(self) -> bool:
        return self.error_code == INSUFFICIENT_CREDITS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'balance_after': self.balance_after,
            'cost': self.cost,
            'transaction_id': self.transaction_id,
            'error_message': self.error_message,
            'error_code': self.error_code,
        }


@dataclass(frozen=True)
class AdditionResult:
    success: bool
    balance_after: int
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'balance_after': self.balance_after,
            'transaction_id': self.transaction_id,
            'error_message': self.error_message,
            'error_code': self.error_code,
        }


# A refund is an addition that references the transaction it reverses.
RefundResult = AdditionResult


class ExecutionState(Enum):
    REJECTED = "rejected"
    SETTLED = "settled"
    REFUNDED = "refunded"
    INCONSISTENT = "inconsistent"


@dataclass(frozen=True)
class ExecutionResult(Generic[T]):
    state: ExecutionState
    cost: int
    current_balance: int
    value: Optional[T] = None
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == ExecutionState.SETTLED

    @property
    def rejected(self) -> bool:
        return self.state == ExecutionState.REJECTED


@dataclass(frozen=True)
class GrantResult:
    applied: bool
    transaction_id: Optional[str] = None
    balance_after: Optional[int] = None

    @property
    def duplicate(self) -> bool:
        return not self.applied
