from dataclasses import dataclass, field
from typing import Dict, List, Optional

from credit_core.billing.domain.entities.transaction import OperationType
from credit_core.utils.config import config

DEFAULT_CREDIT_PRICING: Dict[OperationType, int] = {
    OperationType.AI_GENERATION: 10,
    OperationType.AI_CHAT: 1,
    OperationType.IMAGE_GENERATION: 15,
    OperationType.VIDEO_GENERATION: 50,
    OperationType.DOCUMENT_PROCESSING: 5,
    OperationType.API_CALL: 1,
    OperationType.PURCHASE: 0,
    OperationType.REFUND: 0,
    OperationType.BONUS: 0,
    OperationType.SUBSCRIPTION: 0,
    OperationType.ADMIN_ADJUSTMENT: 0,
}

# Operation types that are billed through the operation executor.
BILLABLE_OPERATIONS = frozenset(op for op, cost in DEFAULT_CREDIT_PRICING.items() if cost > 0)

PRICE_PER_CREDIT_EUR = 0.10
HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 1000


@dataclass
class Plan:
    id: str
    name: str
    description: str
    price: int
    credits: int
    stripe_price_id: str
    popular: bool = False
    features: List[str] = field(default_factory=list)


PLANS: List[Plan] = [
    Plan(
        id='starter',
        name='Starter',
        description='Perfect for getting started',
        price=9,
        credits=50,
        stripe_price_id=config.STRIPE_PRICE_ID_STARTER,
        features=['50 credits per month', 'Basic features', 'Email support', 'API access'],
    ),
    Plan(
        id='pro',
        name='Professional',
        description='Best for professionals',
        price=29,
        credits=200,
        stripe_price_id=config.STRIPE_PRICE_ID_PRO,
        popular=True,
        features=['200 credits per month', 'All Starter features', 'Priority support', 'Advanced analytics'],
    ),
    Plan(
        id='business',
        name='Business',
        description='For teams and businesses',
        price=99,
        credits=1000,
        stripe_price_id=config.STRIPE_PRICE_ID_BUSINESS,
        features=['1000 credits per month', 'All Pro features', 'Dedicated support', 'Custom integrations'],
    ),
]


def get_plan_by_id(plan_id: str) -> Optional[Plan]:
    for plan in PLANS:
        if plan.id == plan_id:
            return plan
    return None


def get_plan_by_price_id(price_id: Optional[str]) -> Optional[Plan]:
    if not price_id:
        return None
    for plan in PLANS:
        if plan.stripe_price_id and plan.stripe_price_id == price_id:
            return plan
    return None


def get_credits_for_price_id(price_id: Optional[str]) -> int:
    plan = get_plan_by_price_id(price_id)
    return plan.credits if plan else 0


def get_plan_name_for_price_id(price_id: Optional[str]) -> str:
    plan = get_plan_by_price_id(price_id)
    return plan.id if plan else 'free'
