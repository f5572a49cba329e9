from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Account:
    id: str
    credits: int
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_plan: Optional[str] = None
    current_period_end: Optional[datetime] = None

    def can_afford(self, cost: int) -> bool:
        return self.credits >= cost

    def has_active_subscription(self) -> bool:
        return self.subscription_status in ("active", "trialing")
