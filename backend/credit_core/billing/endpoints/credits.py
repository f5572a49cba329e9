"""
Credit endpoints: balance, history, affordability checks and deductions for
the authenticated account, plus an admin-only manual grant.
"""
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from credit_core.billing.config import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT
from credit_core.billing.credits.display import format_credits
from credit_core.billing.credits.ledger import LedgerEngine
from credit_core.billing.shared.exceptions import DuplicateGrantError, InsufficientCreditsError
from credit_core.billing.shared.models import AdminCreditAddRequest, CreditCheckRequest, CreditDeductRequest
from credit_core.utils.auth_utils import get_account_id, verify_admin_api_key
from credit_core.utils.logger import logger
from .dependencies import get_ledger

router = APIRouter(prefix="/credits", tags=["billing-credits"])


@router.get("/balance")
async def get_credit_balance(
    request: Request,
    account_id: str = Depends(get_account_id),
    ledger: LedgerEngine = Depends(get_ledger),
) -> Dict:
    balance = await ledger.get_balance(account_id)
    display = format_credits(balance, request.app.state.settings.LOW_CREDIT_THRESHOLD)
    return {'credits': balance, 'display': display.to_dict()}


@router.get("/history")
async def get_credit_history(
    limit: int = Query(HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT),
    account_id: str = Depends(get_account_id),
    ledger: LedgerEngine = Depends(get_ledger),
) -> Dict:
    transactions = await ledger.get_history(account_id, limit)
    return {'transactions': [tx.to_dict() for tx in transactions]}


@router.post("/check")
async def check_credits(
    body: CreditCheckRequest,
    account_id: str = Depends(get_account_id),
    ledger: LedgerEngine = Depends(get_ledger),
) -> Dict:
    result = await ledger.check_affordable(account_id, body.operation_type, body.custom_cost)
    return result.to_dict()


@router.post("/deduct")
async def deduct_credits(
    body: CreditDeductRequest,
    account_id: str = Depends(get_account_id),
    ledger: LedgerEngine = Depends(get_ledger),
) -> Dict:
    result = await ledger.deduct(
        account_id,
        body.operation_type,
        body.metadata,
        reference_id=body.reference_id,
        custom_cost=body.custom_cost,
    )
    if result.insufficient_credits:
        error = InsufficientCreditsError(result.balance_after, result.cost)
        raise HTTPException(
            status_code=402,
            detail={'message': str(error), 'balance': error.balance, 'required': error.required},
        )
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error_message)
    return result.to_dict()


@router.post("/add")
async def add_credits(
    body: AdminCreditAddRequest,
    _: bool = Depends(verify_admin_api_key),
    ledger: LedgerEngine = Depends(get_ledger),
) -> Dict:
    logger.info(f"[ADMIN] Adding {body.amount} {body.operation_type.value} credits to {body.target_account_id}")
    try:
        result = await ledger.add(
            body.target_account_id,
            body.operation_type,
            body.amount,
            body.metadata,
            reference_id=body.reference_id,
        )
    except DuplicateGrantError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error_message)
    return result.to_dict()
