import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import orjson

from credit_core.billing.domain.entities import Account, OperationType, Transaction


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_metadata(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, (str, bytes)):
        value = orjson.loads(value)
    return dict(value)


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def is_uuid(value: Any) -> bool:
    """True for a uuid or its string form. Ids are uuid columns in Postgres."""
    if not value:
        return False
    if isinstance(value, uuid.UUID):
        return True
    try:
        uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def row_to_transaction(row: Dict[str, Any]) -> Transaction:
    amount = int(row['amount'])
    balance_after = row.get('balance_after')
    balance_before = row.get('balance_before')
    # Rows written before the balance columns existed only carry the amount
    if balance_after is None:
        balance_after = 0
    if balance_before is None:
        balance_before = int(balance_after) - amount

    return Transaction(
        id=str(row['id']),
        account_id=str(row['user_id']),
        operation_type=OperationType(row['operation_type']),
        amount=amount,
        balance_before=int(balance_before),
        balance_after=int(balance_after),
        created_at=_parse_datetime(row['created_at']),
        metadata=_parse_metadata(row.get('metadata')),
        reference_id=_str_or_none(row.get('reference_id')),
        idempotency_key=row.get('idempotency_key'),
    )


def row_to_account(row: Dict[str, Any]) -> Account:
    return Account(
        id=str(row['id']),
        credits=int(row.get('credits') or 0),
        stripe_customer_id=row.get('stripe_customer_id'),
        stripe_subscription_id=row.get('stripe_subscription_id'),
        subscription_status=row.get('subscription_status'),
        subscription_plan=row.get('subscription_plan'),
        current_period_end=_parse_datetime(row.get('current_period_end')),
    )
