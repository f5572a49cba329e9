from typing import Dict

from fastapi import APIRouter, Depends, Request

from credit_core.billing.external.stripe.webhooks import WebhookService
from .dependencies import get_webhook_service

router = APIRouter(prefix="/webhooks", tags=["billing-webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    webhook_service: WebhookService = Depends(get_webhook_service),
) -> Dict:
    return await webhook_service.process_stripe_webhook(request)
