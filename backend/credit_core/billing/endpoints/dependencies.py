from fastapi import Request

from credit_core.billing.credits.executor import OperationExecutor
from credit_core.billing.credits.ledger import LedgerEngine
from credit_core.billing.external.stripe.webhooks import WebhookService


def get_ledger(request: Request) -> LedgerEngine:
    return request.app.state.ledger


def get_executor(request: Request) -> OperationExecutor:
    return request.app.state.executor


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service
