from typing import Any, Dict

from credit_core.billing.config import get_plan_name_for_price_id
from credit_core.billing.repo.interfaces import LedgerStore
from credit_core.utils.logger import logger
from ..client import field, subscription_period_end, subscription_price_id


class SubscriptionHandler:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def handle_subscription_updated(self, event: Dict[str, Any]) -> None:
        subscription = event['data']['object']
        subscription_id = field(subscription, 'id')
        plan_name = get_plan_name_for_price_id(subscription_price_id(subscription))

        await self.store.update_subscription(
            subscription_id=subscription_id,
            subscription_status=field(subscription, 'status'),
            subscription_plan=plan_name,
            current_period_end=subscription_period_end(subscription),
        )
        logger.info(f"[SUBSCRIPTION] Updated {subscription_id}: status={field(subscription, 'status')}, plan={plan_name}")

    async def handle_subscription_deleted(self, event: Dict[str, Any]) -> None:
        subscription_id = field(event['data']['object'], 'id')
        await self.store.update_subscription(subscription_id=subscription_id, subscription_status='canceled')
        logger.info(f"[SUBSCRIPTION] Canceled {subscription_id}")
