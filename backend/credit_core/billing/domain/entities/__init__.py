from .account import Account
from .transaction import OperationType, Transaction
from .results import (
    CreditCheckResult,
    DeductionResult,
    AdditionResult,
    RefundResult,
    ExecutionState,
    ExecutionResult,
    GrantResult,
)

__all__ = [
    'Account',
    'OperationType',
    'Transaction',
    'CreditCheckResult',
    'DeductionResult',
    'AdditionResult',
    'RefundResult',
    'ExecutionState',
    'ExecutionResult',
    'GrantResult',
]
