import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request

from credit_core.utils.logger import structlog


def _constant_time_compare(a: str, b: str) -> bool:
    """Constant-time string comparison to prevent timing attacks."""
    return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))


async def get_account_id(x_account_id: Optional[str] = Header(None)) -> str:
    """Account id set by the upstream auth layer for the authenticated caller."""
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Missing X-Account-Id header."
        )
    account_id = x_account_id.strip()
    structlog.contextvars.bind_contextvars(account_id=account_id)
    return account_id


async def verify_admin_api_key(request: Request, x_admin_api_key: Optional[str] = Header(None)) -> bool:
    expected = request.app.state.settings.ADMIN_API_KEY
    if not expected:
        raise HTTPException(
            status_code=500,
            detail="Admin API key not configured on server"
        )

    if not x_admin_api_key:
        raise HTTPException(
            status_code=401,
            detail="Admin API key required. Include X-Admin-Api-Key header."
        )

    if not _constant_time_compare(x_admin_api_key, expected):
        raise HTTPException(
            status_code=403,
            detail="Invalid admin API key"
        )

    return True
