from .calculator import calculate_token_cost, get_default_cost, get_operation_cost
from .ledger import LedgerEngine
from .executor import OperationExecutor, with_deadline

__all__ = [
    'calculate_token_cost',
    'get_default_cost',
    'get_operation_cost',
    'LedgerEngine',
    'OperationExecutor',
    'with_deadline',
]
