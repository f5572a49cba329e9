"""
Idempotency and reference bookkeeping for ledger writes.

An externally triggered grant (a Stripe checkout session, a paid invoice)
carries a stable idempotency key in the transaction metadata and in the
`idempotency_key` column. Refunds point at the transaction they reverse
through `reference_id`.
"""
import re
from typing import Any, Dict, Optional, Tuple

from credit_core.billing.repo.mappers import is_uuid

IDEMPOTENCY_KEY = 'idempotency_key'
IDEMPOTENCY_SOURCE = 'idempotency_source'
REASON = 'reason'
ERROR = 'error'
ORIGINAL_TRANSACTION_ID = 'original_transaction_id'
ORIGINAL_OPERATION_TYPE = 'original_operation_type'
ORIGINAL_REFERENCE_ID = 'original_reference_id'
STRIPE_SESSION_ID = 'stripe_session_id'
STRIPE_INVOICE_ID = 'stripe_invoice_id'
PLAN_NAME = 'plan_name'
GRANT_TYPE = 'grant_type'

REASON_GENERATION_FAILED = 'generation_failed'

_KEY_PART_RE = re.compile(r'^[A-Za-z0-9_\-\.]+$')


def stripe_event_key(kind: str, object_id: str) -> str:
    """Stable key for a Stripe object that may be delivered more than once.

    Example: stripe_event_key('invoice', 'in_123') -> 'stripe:invoice:in_123'
    """
    if not kind or not _KEY_PART_RE.match(kind):
        raise ValueError(f"Invalid idempotency key kind: {kind!r}")
    if not object_id or not _KEY_PART_RE.match(object_id):
        raise ValueError(f"Invalid Stripe object id: {object_id!r}")
    return f"stripe:{kind}:{object_id}"


def with_idempotency(metadata: Optional[Dict[str, Any]], key: str, source: Optional[str] = None) -> Dict[str, Any]:
    result = dict(metadata or {})
    result[IDEMPOTENCY_KEY] = key
    if source:
        result[IDEMPOTENCY_SOURCE] = source
    return result


def get_idempotency_key(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    if not metadata:
        return None
    key = metadata.get(IDEMPOTENCY_KEY)
    return str(key) if key else None


def normalize_reference(
    reference_id: Optional[str],
    metadata: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[str], Dict[str, Any]]:
    """Keep uuid references in the column, move anything else into metadata."""
    result = dict(metadata or {})
    if reference_id and not is_uuid(reference_id):
        result[ORIGINAL_REFERENCE_ID] = reference_id
        return None, result
    return reference_id or None, result


def refund_key(original_transaction_id: str) -> str:
    """One refund per original transaction; retries collide on this key."""
    return f"refund:{original_transaction_id}"


def refund_metadata(
    original_transaction_id: str,
    original_operation_type: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    result = dict(extra or {})
    result[ORIGINAL_TRANSACTION_ID] = original_transaction_id
    result[ORIGINAL_OPERATION_TYPE] = original_operation_type
    return result
