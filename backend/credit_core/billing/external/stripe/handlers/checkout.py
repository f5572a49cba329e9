from typing import Any, Dict

from credit_core.billing.config import get_credits_for_price_id, get_plan_name_for_price_id
from credit_core.billing.credits.executor import OperationExecutor
from credit_core.billing.credits.idempotency import GRANT_TYPE, PLAN_NAME, STRIPE_SESSION_ID, stripe_event_key
from credit_core.billing.domain.entities import OperationType
from credit_core.billing.repo.interfaces import LedgerStore
from credit_core.utils.logger import logger
from ..client import field, object_id, retrieve_subscription, subscription_period_end, subscription_price_id


class CheckoutHandler:
    def __init__(self, executor: OperationExecutor, store: LedgerStore):
        self.executor = executor
        self.store = store

    async def handle_checkout_session_completed(self, event: Dict[str, Any]) -> None:
        session = event['data']['object']
        metadata = field(session, 'metadata', {})
        account_id = field(metadata, 'account_id') or field(metadata, 'userId')
        if not account_id:
            logger.error(f"[CHECKOUT] Session {field(session, 'id')} has no account_id in metadata")
            return

        mode = field(session, 'mode')
        if mode == 'subscription':
            await self._handle_subscription_checkout(session, account_id)
        elif mode == 'payment' and field(metadata, 'type') == 'credit_purchase':
            await self._handle_credit_purchase(session, account_id)
        else:
            logger.info(f"[CHECKOUT] Ignoring session {field(session, 'id')} with mode {mode}")

    async def _handle_subscription_checkout(self, session: Dict[str, Any], account_id: str) -> None:
        session_id = field(session, 'id')
        subscription_id = object_id(field(session, 'subscription'))
        customer_id = object_id(field(session, 'customer'))
        if not subscription_id or not customer_id:
            logger.error(f"[CHECKOUT] Session {session_id} is missing subscription or customer id")
            return

        subscription = await retrieve_subscription(subscription_id)
        price_id = subscription_price_id(subscription)
        plan_name = get_plan_name_for_price_id(price_id)
        credits = get_credits_for_price_id(price_id)

        await self.store.update_subscription(
            account_id=account_id,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            subscription_status='active',
            subscription_plan=plan_name,
            current_period_end=subscription_period_end(subscription),
        )

        if credits > 0:
            await self.executor.grant_if_new(
                account_id,
                OperationType.SUBSCRIPTION,
                credits,
                stripe_event_key('checkout_session', session_id),
                {
                    STRIPE_SESSION_ID: session_id,
                    PLAN_NAME: plan_name,
                    GRANT_TYPE: 'subscription_initial',
                },
            )

        logger.info(f"[CHECKOUT] Subscription {subscription_id} activated for {account_id}: plan={plan_name}, credits={credits}")

    async def _handle_credit_purchase(self, session: Dict[str, Any], account_id: str) -> None:
        session_id = field(session, 'id')
        if field(session, 'payment_status') == 'unpaid':
            logger.info(f"[CHECKOUT] Credit purchase {session_id} not paid yet, skipping")
            return

        try:
            credits = int(field(field(session, 'metadata', {}), 'credit_amount', 0))
        except (TypeError, ValueError):
            credits = 0
        if credits <= 0:
            logger.error(f"[CHECKOUT] Credit purchase {session_id} has no valid credit_amount")
            return

        await self.executor.grant_if_new(
            account_id,
            OperationType.PURCHASE,
            credits,
            stripe_event_key('checkout_session', session_id),
            {STRIPE_SESSION_ID: session_id, GRANT_TYPE: 'credit_purchase'},
        )
        logger.info(f"[CHECKOUT] Credit purchase {session_id}: {credits} credits for {account_id}")
