from datetime import datetime, timezone
from typing import Any, Optional

import stripe

from credit_core.utils.logger import logger


def field(obj: Any, key: str, default: Any = None) -> Any:
    """Read `key` from a webhook dict or a StripeObject."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def object_id(value: Any) -> Optional[str]:
    """Id of a Stripe reference that may be a bare id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return field(value, 'id')


def from_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def subscription_price_id(subscription: Any) -> Optional[str]:
    items = field(field(subscription, 'items'), 'data') or []
    if not items:
        return None
    return field(field(items[0], 'price'), 'id')


def subscription_period_end(subscription: Any) -> Optional[datetime]:
    # Newer API versions carry the period on the subscription item
    period_end = field(subscription, 'current_period_end')
    if period_end is None:
        items = field(field(subscription, 'items'), 'data') or []
        if items:
            period_end = field(items[0], 'current_period_end')
    return from_timestamp(period_end)


async def retrieve_subscription(subscription_id: str) -> Any:
    try:
        return await stripe.Subscription.retrieve_async(subscription_id)
    except stripe.StripeError as e:
        logger.error(f"[STRIPE] Failed to retrieve subscription {subscription_id}: {e}")
        raise
