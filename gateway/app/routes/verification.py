"""API routes for metered verification calls."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..errors import GatewayError
from ..schemas.verification import VerificationRequest, VerificationResponse
from ..services.verification import get_verification_service
from .dependencies import current_user as _get_current_user

router = APIRouter(prefix="/api/verification", tags=["verification"])


@router.post("/verify", response_model=VerificationResponse)
def verify(
    payload: VerificationRequest,
    *,
    current_user=Depends(_get_current_user),
) -> VerificationResponse:
    service = get_verification_service()
    try:
        result = service.invoke(str(current_user.id), payload.service_key, payload.payload)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    return VerificationResponse.from_result(result)
