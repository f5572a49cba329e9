from typing import Any, Dict, Optional

from credit_core.billing.config import get_credits_for_price_id, get_plan_name_for_price_id
from credit_core.billing.credits.executor import OperationExecutor
from credit_core.billing.credits.idempotency import GRANT_TYPE, PLAN_NAME, STRIPE_INVOICE_ID, stripe_event_key
from credit_core.billing.domain.entities import OperationType
from credit_core.billing.repo.interfaces import LedgerStore
from credit_core.utils.logger import logger
from ..client import field, object_id, retrieve_subscription, subscription_period_end, subscription_price_id


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    subscription_id = object_id(field(invoice, 'subscription'))
    if subscription_id:
        return subscription_id
    # Newer API versions moved it under parent.subscription_details
    details = field(field(invoice, 'parent'), 'subscription_details')
    return object_id(field(details, 'subscription'))


class InvoiceHandler:
    def __init__(self, executor: OperationExecutor, store: LedgerStore):
        self.executor = executor
        self.store = store

    async def handle_invoice_payment_succeeded(self, event: Dict[str, Any]) -> None:
        invoice = event['data']['object']
        invoice_id = field(invoice, 'id')
        subscription_id = _invoice_subscription_id(invoice)
        customer_id = object_id(field(invoice, 'customer'))
        if not subscription_id or not customer_id:
            return

        # The first invoice is granted by checkout.session.completed
        if field(invoice, 'billing_reason') == 'subscription_create':
            logger.info(f"[INVOICE] Skipping initial invoice {invoice_id}")
            return

        account_id = await self.store.find_account_id_by_stripe_ids(subscription_id, customer_id)
        if not account_id:
            logger.error(f"[INVOICE] No account found for subscription {subscription_id} / customer {customer_id}")
            return

        subscription = await retrieve_subscription(subscription_id)
        price_id = subscription_price_id(subscription)
        credits = get_credits_for_price_id(price_id)
        plan_name = get_plan_name_for_price_id(price_id)

        if credits > 0 and field(invoice, 'amount_paid', 0) > 0:
            await self.executor.grant_if_new(
                account_id,
                OperationType.SUBSCRIPTION,
                credits,
                stripe_event_key('invoice', invoice_id),
                {
                    STRIPE_INVOICE_ID: invoice_id,
                    PLAN_NAME: plan_name,
                    GRANT_TYPE: 'subscription_renewal',
                },
            )

        await self.store.update_subscription(
            account_id=account_id,
            subscription_status=field(subscription, 'status'),
            current_period_end=subscription_period_end(subscription),
        )
        logger.info(f"[INVOICE] Subscription {subscription_id} renewed for {account_id}: credits={credits}")
