import hashlib
import hmac
import time
from unittest.mock import AsyncMock, patch

import orjson
import pytest
from fastapi import HTTPException

from credit_core.billing.domain.entities import OperationType
from credit_core.billing.external.stripe.webhooks import WebhookService
from credit_core.utils.config import Configuration

pytestmark = pytest.mark.billing

WEBHOOK_SECRET = "whsec_test_secret"
PERIOD_END = 1767225600

CHECKOUT_RETRIEVE = 'credit_core.billing.external.stripe.handlers.checkout.retrieve_subscription'
INVOICE_RETRIEVE = 'credit_core.billing.external.stripe.handlers.invoice.retrieve_subscription'


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode('utf-8')
    signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event(event_type: str, obj: dict, event_id: str = "evt_1") -> bytes:
    return orjson.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})


def subscription(price_id: str = "price_pro_test", status: str = "active") -> dict:
    return {
        "id": "sub_1",
        "status": status,
        "current_period_end": PERIOD_END,
        "items": {"data": [{"price": {"id": price_id}}]},
    }


@pytest.fixture
def settings() -> Configuration:
    return Configuration()


@pytest.fixture
def service(executor, store, settings) -> WebhookService:
    return WebhookService(executor, store, settings)


async def deliver(service: WebhookService, payload: bytes):
    return await service.handle_payload(payload, sign(payload))


class TestSignature:
    @pytest.mark.asyncio
    async def test_secret_not_configured(self, service, settings):
        settings.STRIPE_WEBHOOK_SECRET = None
        payload = event("checkout.session.completed", {})

        with pytest.raises(HTTPException) as exc_info:
            await deliver(service, payload)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_missing_signature(self, service):
        with pytest.raises(HTTPException) as exc_info:
            await service.handle_payload(event("invoice.paid", {}), None)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_bad_signature(self, service):
        payload = event("invoice.paid", {})
        with pytest.raises(HTTPException) as exc_info:
            await service.handle_payload(payload, sign(payload, secret="whsec_other"))
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_tampered_payload(self, service):
        payload = event("invoice.paid", {"id": "in_1"})
        header = sign(payload)
        with pytest.raises(HTTPException) as exc_info:
            await service.handle_payload(payload.replace(b"in_1", b"in_2"), header)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unhandled_event_is_acknowledged(self, service):
        result = await deliver(service, event("customer.created", {"id": "cus_1"}))
        assert result == {'status': 'success'}


class TestCheckout:
    @pytest.mark.asyncio
    async def test_subscription_checkout_grants_once(self, service, ledger, store, account):
        session = {
            "id": "cs_test_1",
            "mode": "subscription",
            "subscription": "sub_1",
            "customer": "cus_1",
            "metadata": {"account_id": account.id},
        }
        payload = event("checkout.session.completed", session)

        with patch(CHECKOUT_RETRIEVE, new_callable=AsyncMock, return_value=subscription()) as retrieve:
            await deliver(service, payload)
            await deliver(service, payload)

        retrieve.assert_awaited_with("sub_1")
        assert await ledger.get_balance(account.id) == 300

        updated = await store.get_account(account.id)
        assert updated.stripe_customer_id == "cus_1"
        assert updated.stripe_subscription_id == "sub_1"
        assert updated.subscription_status == "active"
        assert updated.subscription_plan == "pro"
        assert int(updated.current_period_end.timestamp()) == PERIOD_END

        grant = (await ledger.get_history(account.id, limit=1))[0]
        assert grant.operation_type == OperationType.SUBSCRIPTION
        assert grant.idempotency_key == "stripe:checkout_session:cs_test_1"
        assert grant.metadata["stripe_session_id"] == "cs_test_1"
        assert grant.metadata["plan_name"] == "pro"
        assert grant.metadata["grant_type"] == "subscription_initial"

    @pytest.mark.asyncio
    async def test_legacy_user_id_metadata(self, service, ledger, account):
        session = {
            "id": "cs_test_2",
            "mode": "subscription",
            "subscription": {"id": "sub_1"},
            "customer": {"id": "cus_1"},
            "metadata": {"userId": account.id},
        }
        with patch(CHECKOUT_RETRIEVE, new_callable=AsyncMock, return_value=subscription("price_starter_test")):
            await deliver(service, event("checkout.session.completed", session))
        assert await ledger.get_balance(account.id) == 150

    @pytest.mark.asyncio
    async def test_credit_purchase(self, service, ledger, account):
        session = {
            "id": "cs_purchase_1",
            "mode": "payment",
            "payment_status": "paid",
            "metadata": {"account_id": account.id, "type": "credit_purchase", "credit_amount": "25"},
        }
        payload = event("checkout.session.completed", session)

        await deliver(service, payload)
        await deliver(service, payload)

        assert await ledger.get_balance(account.id) == 125
        grant = (await ledger.get_history(account.id, limit=1))[0]
        assert grant.operation_type == OperationType.PURCHASE
        assert grant.metadata["grant_type"] == "credit_purchase"

    @pytest.mark.asyncio
    async def test_missing_account_metadata_is_ignored(self, service):
        session = {"id": "cs_x", "mode": "subscription", "metadata": {}}
        with patch(CHECKOUT_RETRIEVE, new_callable=AsyncMock) as retrieve:
            result = await deliver(service, event("checkout.session.completed", session))
        assert result == {'status': 'success'}
        retrieve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_account_fails_for_redelivery(self, service):
        session = {
            "id": "cs_orphan",
            "mode": "subscription",
            "subscription": "sub_1",
            "customer": "cus_1",
            "metadata": {"account_id": "00000000-0000-0000-0000-000000000000"},
        }
        with patch(CHECKOUT_RETRIEVE, new_callable=AsyncMock, return_value=subscription()):
            with pytest.raises(HTTPException) as exc_info:
                await deliver(service, event("checkout.session.completed", session))
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_stripe_outage_fails_for_redelivery(self, service, ledger, account):
        session = {
            "id": "cs_outage",
            "mode": "subscription",
            "subscription": "sub_1",
            "customer": "cus_1",
            "metadata": {"account_id": account.id},
        }
        with patch(CHECKOUT_RETRIEVE, new_callable=AsyncMock, side_effect=RuntimeError("stripe unavailable")):
            with pytest.raises(HTTPException) as exc_info:
                await deliver(service, event("checkout.session.completed", session))
        assert exc_info.value.status_code == 500
        assert await ledger.get_balance(account.id) == 100


class TestInvoice:
    @pytest.fixture
    def subscriber(self, store):
        return store.create_account(
            credits=0,
            stripe_customer_id="cus_1",
            stripe_subscription_id="sub_1",
            subscription_status="active",
            subscription_plan="pro",
        )

    @staticmethod
    def invoice(**overrides) -> dict:
        data = {
            "id": "in_1",
            "subscription": "sub_1",
            "customer": "cus_1",
            "billing_reason": "subscription_cycle",
            "amount_paid": 2900,
        }
        data.update(overrides)
        return data

    @pytest.mark.asyncio
    async def test_renewal_grants_once_across_event_types(self, service, ledger, store, subscriber):
        with patch(INVOICE_RETRIEVE, new_callable=AsyncMock, return_value=subscription()):
            await deliver(service, event("invoice.payment_succeeded", self.invoice(), "evt_1"))
            await deliver(service, event("invoice.paid", self.invoice(), "evt_2"))

        assert await ledger.get_balance(subscriber.id) == 200
        grant = (await ledger.get_history(subscriber.id, limit=1))[0]
        assert grant.idempotency_key == "stripe:invoice:in_1"
        assert grant.metadata["stripe_invoice_id"] == "in_1"
        assert grant.metadata["grant_type"] == "subscription_renewal"

        updated = await store.get_account(subscriber.id)
        assert int(updated.current_period_end.timestamp()) == PERIOD_END

    @pytest.mark.asyncio
    async def test_next_invoice_grants_again(self, service, ledger, subscriber):
        with patch(INVOICE_RETRIEVE, new_callable=AsyncMock, return_value=subscription()):
            await deliver(service, event("invoice.payment_succeeded", self.invoice(id="in_1")))
            await deliver(service, event("invoice.payment_succeeded", self.invoice(id="in_2")))
        assert await ledger.get_balance(subscriber.id) == 400

    @pytest.mark.asyncio
    async def test_initial_invoice_skipped(self, service, ledger, subscriber):
        with patch(INVOICE_RETRIEVE, new_callable=AsyncMock) as retrieve:
            await deliver(service, event("invoice.payment_succeeded", self.invoice(billing_reason="subscription_create")))
        retrieve.assert_not_awaited()
        assert await ledger.get_balance(subscriber.id) == 0

    @pytest.mark.asyncio
    async def test_zero_amount_invoice_grants_nothing(self, service, ledger, subscriber):
        with patch(INVOICE_RETRIEVE, new_callable=AsyncMock, return_value=subscription()):
            await deliver(service, event("invoice.payment_succeeded", self.invoice(amount_paid=0)))
        assert await ledger.get_balance(subscriber.id) == 0

    @pytest.mark.asyncio
    async def test_account_resolved_by_customer(self, service, ledger, subscriber):
        with patch(INVOICE_RETRIEVE, new_callable=AsyncMock, return_value=subscription()):
            await deliver(service, event("invoice.payment_succeeded", self.invoice(subscription="sub_new")))
        assert await ledger.get_balance(subscriber.id) == 200

    @pytest.mark.asyncio
    async def test_subscription_under_parent_details(self, service, ledger, subscriber):
        invoice = self.invoice(subscription=None, parent={"subscription_details": {"subscription": "sub_1"}})
        with patch(INVOICE_RETRIEVE, new_callable=AsyncMock, return_value=subscription()):
            await deliver(service, event("invoice.paid", invoice))
        assert await ledger.get_balance(subscriber.id) == 200


class TestSubscriptionEvents:
    @pytest.mark.asyncio
    async def test_updated(self, service, store):
        subscriber = store.create_account(stripe_subscription_id="sub_1", subscription_plan="starter")

        await deliver(service, event("customer.subscription.updated", subscription("price_business_test", "past_due")))

        updated = await store.get_account(subscriber.id)
        assert updated.subscription_status == "past_due"
        assert updated.subscription_plan == "business"
        assert updated.credits == 0

    @pytest.mark.asyncio
    async def test_deleted(self, service, store):
        subscriber = store.create_account(stripe_subscription_id="sub_1", subscription_status="active")

        await deliver(service, event("customer.subscription.deleted", {"id": "sub_1"}))

        updated = await store.get_account(subscriber.id)
        assert updated.subscription_status == "canceled"
        assert updated.has_active_subscription() is False
