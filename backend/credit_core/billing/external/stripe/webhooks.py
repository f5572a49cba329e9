from typing import Any, Dict, Optional

import orjson
import stripe
from fastapi import HTTPException, Request

from credit_core.billing.credits.executor import OperationExecutor
from credit_core.billing.repo.interfaces import LedgerStore
from credit_core.billing.shared.exceptions import WebhookError
from credit_core.utils.config import Configuration
from credit_core.utils.logger import logger
from .handlers import CheckoutHandler, InvoiceHandler, SubscriptionHandler

SIGNATURE_TOLERANCE_SECONDS = 60


class WebhookService:
    """Verifies Stripe deliveries and routes them to the event handlers.

    Stripe retries anything that is not a 2xx, so handler errors surface as
    HTTP 500. Replayed grants are absorbed by `OperationExecutor.grant_if_new`.
    """

    def __init__(self, executor: OperationExecutor, store: LedgerStore, settings: Configuration):
        self.settings = settings
        if settings.STRIPE_SECRET_KEY:
            stripe.api_key = settings.STRIPE_SECRET_KEY
        self.checkout = CheckoutHandler(executor, store)
        self.invoice = InvoiceHandler(executor, store)
        self.subscription = SubscriptionHandler(store)

    async def process_stripe_webhook(self, request: Request) -> Dict:
        payload = await request.body()
        sig_header = request.headers.get('stripe-signature')
        return await self.handle_payload(payload, sig_header)

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        if not self.settings.STRIPE_WEBHOOK_SECRET:
            logger.error("[WEBHOOK] Secret not configured")
            raise HTTPException(status_code=500, detail="Webhook secret not configured")
        if not sig_header:
            raise HTTPException(status_code=400, detail="Missing signature")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode('utf-8'),
                sig_header,
                self.settings.STRIPE_WEBHOOK_SECRET,
                tolerance=SIGNATURE_TOLERANCE_SECONDS,
            )
            event = orjson.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.error(f"[WEBHOOK] Signature verification failed: {e}")
            raise HTTPException(status_code=400, detail="Invalid webhook signature")
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")

        if not isinstance(event, dict) or not event.get('type') or not isinstance(event.get('data'), dict) \
                or 'object' not in event['data']:
            raise HTTPException(status_code=400, detail="Invalid payload")
        return event

    async def handle_payload(self, payload: bytes, sig_header: Optional[str]) -> Dict:
        event = self.construct_event(payload, sig_header)
        event_type = event['type']
        logger.info(f"[WEBHOOK] Processing event type: {event_type} (ID: {event.get('id')})")

        try:
            await self.dispatch(event)
        except WebhookError as e:
            logger.error(f"[WEBHOOK] Malformed {event_type} event {event.get('id')}: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"[WEBHOOK] Error processing {event_type} event {event.get('id')}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Webhook processing failed") from e

        return {'status': 'success'}

    async def dispatch(self, event: Dict[str, Any]) -> None:
        event_type = event['type']
        try:
            if event_type == 'checkout.session.completed':
                await self.checkout.handle_checkout_session_completed(event)
            elif event_type in ('invoice.payment_succeeded', 'invoice.paid'):
                await self.invoice.handle_invoice_payment_succeeded(event)
            elif event_type == 'customer.subscription.updated':
                await self.subscription.handle_subscription_updated(event)
            elif event_type == 'customer.subscription.deleted':
                await self.subscription.handle_subscription_deleted(event)
            else:
                logger.info(f"[WEBHOOK] Unhandled event type: {event_type}")
        except (KeyError, TypeError) as e:
            raise WebhookError(f"Missing field in {event_type} payload: {e}") from e
