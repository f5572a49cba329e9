import uuid

import pytest

from credit_core.billing.credits.idempotency import (
    IDEMPOTENCY_KEY,
    IDEMPOTENCY_SOURCE,
    ORIGINAL_OPERATION_TYPE,
    ORIGINAL_REFERENCE_ID,
    ORIGINAL_TRANSACTION_ID,
    get_idempotency_key,
    is_uuid,
    normalize_reference,
    refund_metadata,
    stripe_event_key,
    with_idempotency,
)


def test_stripe_event_key_format():
    assert stripe_event_key("checkout_session", "cs_test_123") == "stripe:checkout_session:cs_test_123"
    assert stripe_event_key("invoice", "in_123") == "stripe:invoice:in_123"


@pytest.mark.parametrize("kind,object_id", [("", "in_1"), ("invoice", ""), ("invoice", "in 1"), ("in:voice", "in_1")])
def test_stripe_event_key_rejects_bad_parts(kind, object_id):
    with pytest.raises(ValueError):
        stripe_event_key(kind, object_id)


def test_with_idempotency_copies_metadata():
    original = {"plan_name": "pro"}
    tagged = with_idempotency(original, "stripe:invoice:in_1", source="stripe")

    assert tagged == {"plan_name": "pro", IDEMPOTENCY_KEY: "stripe:invoice:in_1", IDEMPOTENCY_SOURCE: "stripe"}
    assert original == {"plan_name": "pro"}
    assert get_idempotency_key(tagged) == "stripe:invoice:in_1"
    assert get_idempotency_key({}) is None
    assert get_idempotency_key(None) is None


def test_is_uuid():
    assert is_uuid(str(uuid.uuid4()))
    assert is_uuid(uuid.uuid4())
    assert not is_uuid("req_123")
    assert not is_uuid(None)
    assert not is_uuid("")


def test_normalize_reference_keeps_uuid():
    ref = str(uuid.uuid4())
    reference_id, metadata = normalize_reference(ref, {"a": 1})
    assert reference_id == ref
    assert metadata == {"a": 1}


def test_normalize_reference_moves_non_uuid_into_metadata():
    reference_id, metadata = normalize_reference("chat-msg-42", None)
    assert reference_id is None
    assert metadata == {ORIGINAL_REFERENCE_ID: "chat-msg-42"}


def test_refund_metadata_tags_original():
    metadata = refund_metadata("tx-1", "image_generation", {"reason": "generation_failed"})
    assert metadata[ORIGINAL_TRANSACTION_ID] == "tx-1"
    assert metadata[ORIGINAL_OPERATION_TYPE] == "image_generation"
    assert metadata["reason"] == "generation_failed"
