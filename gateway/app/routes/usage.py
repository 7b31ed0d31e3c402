"""API routes exposing a user's own entitlements and usage ledger."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..errors import AccountNotFound
from ..schemas.usage import UsageSummaryResponse
from ..services.entitlements import get_account_repository
from .dependencies import current_user as _get_current_user

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("/me", response_model=UsageSummaryResponse)
def get_my_usage(*, current_user=Depends(_get_current_user)) -> UsageSummaryResponse:
    user_id = str(current_user.id)
    account = get_account_repository().get_account(user_id)
    if account is None:
        raise AccountNotFound(user_id).to_http_exception()
    return UsageSummaryResponse.from_account(account, datetime.now(timezone.utc))
