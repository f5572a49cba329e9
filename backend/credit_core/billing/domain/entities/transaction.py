from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class OperationType(str, Enum):
    AI_GENERATION = "ai_generation"
    AI_CHAT = "ai_chat"
    IMAGE_GENERATION = "image_generation"
    VIDEO_GENERATION = "video_generation"
    DOCUMENT_PROCESSING = "document_processing"
    API_CALL = "api_call"
    PURCHASE = "purchase"
    REFUND = "refund"
    BONUS = "bonus"
    SUBSCRIPTION = "subscription"
    ADMIN_ADJUSTMENT = "admin_adjustment"

    @classmethod
    def parse(cls, value: "OperationType | str") -> "OperationType":
        if isinstance(value, cls):
            return value
        return cls(value)


@dataclass(frozen=True)
class Transaction:
    id: str
    account_id: str
    operation_type: OperationType
    amount: int
    balance_before: int
    balance_after: int
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    reference_id: Optional[str] = None
    idempotency_key: Optional[str] = None

    @property
    def is_deduction(self) -> bool:
        return self.amount < 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_id': self.account_id,
            'operation_type': self.operation_type.value,
            'amount': self.amount,
            'balance_before': self.balance_before,
            'balance_after': self.balance_after,
            'metadata': dict(self.metadata),
            'reference_id': self.reference_id,
            'created_at': self.created_at.isoformat(),
        }
