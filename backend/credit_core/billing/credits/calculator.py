import math
from typing import Optional

from credit_core.billing.config import DEFAULT_CREDIT_PRICING
from credit_core.billing.domain.entities.transaction import OperationType
from credit_core.billing.shared.exceptions import UnknownOperationTypeError
from credit_core.utils.logger import logger


def get_default_cost(operation_type: OperationType | str) -> int:
    """Default credit cost for an operation type.

    Raises:
        UnknownOperationTypeError: the operation type is not one of the
            configured ones. This is a programming error, never a zero cost.
    """
    try:
        op = OperationType.parse(operation_type)
    except ValueError:
        raise UnknownOperationTypeError(operation_type)

    if op not in DEFAULT_CREDIT_PRICING:
        raise UnknownOperationTypeError(operation_type)
    return DEFAULT_CREDIT_PRICING[op]


def get_operation_cost(operation_type: OperationType | str, custom_cost: Optional[int] = None) -> int:
    """Resolve the cost for one call: the custom cost if given, else the default.

    The operation type is validated even when a custom cost is supplied.
    """
    default_cost = get_default_cost(operation_type)
    if custom_cost is None:
        return default_cost

    if isinstance(custom_cost, bool) or not isinstance(custom_cost, int):
        raise TypeError(f"custom_cost must be an integer number of credits, got {type(custom_cost).__name__}")
    if custom_cost < 0:
        raise ValueError(f"custom_cost must not be negative, got {custom_cost}")
    return custom_cost


def calculate_token_cost(prompt_tokens: int, completion_tokens: int, tokens_per_credit: int = 1000) -> int:
    """Per-token chat billing, rounded up to whole credits (minimum one credit).

    Used by chat callers that know their token counts up front and pass the
    result as `custom_cost`.
    """
    if tokens_per_credit <= 0:
        raise ValueError("tokens_per_credit must be positive")
    if prompt_tokens < 0 or completion_tokens < 0:
        raise ValueError("token counts must not be negative")

    total_tokens = prompt_tokens + completion_tokens
    cost = max(1, math.ceil(total_tokens / tokens_per_credit))
    logger.debug(f"[COST_CALC] {prompt_tokens}+{completion_tokens} tokens at {tokens_per_credit}/credit = {cost} credits")
    return cost
