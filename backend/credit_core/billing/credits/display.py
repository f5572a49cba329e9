from dataclasses import dataclass
from typing import Any, Dict, Optional

from credit_core.billing.config import PRICE_PER_CREDIT_EUR
from credit_core.billing.domain.entities import OperationType

DEFAULT_LOW_THRESHOLD = 10

# Plural unit names, for "N <unit>" strings
_OPERATION_UNITS = {
    OperationType.AI_GENERATION: 'AI generations',
    OperationType.AI_CHAT: 'chat messages',
    OperationType.IMAGE_GENERATION: 'images',
    OperationType.VIDEO_GENERATION: 'videos',
    OperationType.DOCUMENT_PROCESSING: 'documents',
    OperationType.API_CALL: 'API calls',
}

_OPERATION_LABELS = {
    OperationType.AI_GENERATION: 'AI generation',
    OperationType.AI_CHAT: 'Chat',
    OperationType.IMAGE_GENERATION: 'Image generation',
    OperationType.VIDEO_GENERATION: 'Video generation',
    OperationType.DOCUMENT_PROCESSING: 'Document processing',
    OperationType.API_CALL: 'API call',
    OperationType.PURCHASE: 'Purchase',
    OperationType.REFUND: 'Refund',
    OperationType.BONUS: 'Bonus',
    OperationType.SUBSCRIPTION: 'Subscription',
    OperationType.ADMIN_ADJUSTMENT: 'Admin adjustment',
}


@dataclass(frozen=True)
class CreditDisplayInfo:
    credits: int
    display_text: str
    display_short: str
    is_low: bool
    warning_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'credits': self.credits,
            'display_text': self.display_text,
            'display_short': self.display_short,
            'is_low': self.is_low,
            'warning_text': self.warning_text,
        }


def is_low_credits(credits: int, threshold: int = DEFAULT_LOW_THRESHOLD) -> bool:
    return credits <= threshold


def format_credits(credits: int, low_threshold: int = DEFAULT_LOW_THRESHOLD) -> CreditDisplayInfo:
    is_low = is_low_credits(credits, low_threshold)
    return CreditDisplayInfo(
        credits=credits,
        display_text=f"{credits} Credits",
        display_short=str(credits),
        is_low=is_low,
        warning_text=f"Only {credits} credits left" if is_low else None,
    )


def format_credits_for_operation(credits: int, operation_type: OperationType | str) -> str:
    try:
        unit = _OPERATION_UNITS.get(OperationType.parse(operation_type), 'Credits')
    except ValueError:
        unit = 'Credits'
    return f"{credits} {unit}"


def format_credit_cost(credits: int, price_per_credit: float = PRICE_PER_CREDIT_EUR) -> str:
    return f"{credits} Credits (~{credits * price_per_credit:.2f}€)"


def get_operation_label(operation_type: OperationType | str) -> str:
    """Human label for an operation type; unknown values are returned as-is."""
    try:
        return _OPERATION_LABELS[OperationType.parse(operation_type)]
    except (ValueError, KeyError):
        return str(operation_type)


def format_transaction_amount(amount: int) -> str:
    sign = '+' if amount >= 0 else ''
    return f"{sign}{amount} Credits"
