from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from credit_core.billing.domain.entities import OperationType


class CreditCheckRequest(BaseModel):
    operation_type: OperationType
    custom_cost: Optional[int] = Field(default=None, ge=0)


class CreditDeductRequest(BaseModel):
    operation_type: OperationType
    metadata: Dict[str, Any] = Field(default_factory=dict)
    reference_id: Optional[str] = None
    custom_cost: Optional[int] = Field(default=None, ge=0)


class AdminCreditAddRequest(BaseModel):
    target_account_id: str
    amount: int
    operation_type: OperationType = OperationType.ADMIN_ADJUSTMENT
    metadata: Dict[str, Any] = Field(default_factory=dict)
    reference_id: Optional[str] = None
