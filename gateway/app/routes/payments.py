"""API routes for purchasing plans."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..errors import GatewayError
from ..schemas.payments import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentOrderListResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from ..services.payments import get_payment_service
from .dependencies import current_user as _get_current_user

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/order", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CreateOrderResponse:
    service = get_payment_service()
    try:
        checkout = service.create_order(
            str(current_user.id),
            payload.coverage,
            payload.cycle,
            coupon_code=payload.coupon_code,
        )
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CreateOrderResponse.from_checkout(checkout)


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    payload: VerifyPaymentRequest,
    *,
    current_user=Depends(_get_current_user),
) -> VerifyPaymentResponse:
    service = get_payment_service()
    try:
        completion = service.verify_payment(
            payload.order_id,
            payload.gateway_order_id,
            payload.payment_id,
            payload.signature,
            user_id=str(current_user.id),
        )
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    return VerifyPaymentResponse.from_completion(completion)


@router.get("/orders", response_model=PaymentOrderListResponse)
def list_my_orders(
    limit: int = Query(50, ge=1, le=200),
    *,
    current_user=Depends(_get_current_user),
) -> PaymentOrderListResponse:
    service = get_payment_service()
    orders = service.list_orders(str(current_user.id), limit=limit)
    return PaymentOrderListResponse(orders=list(orders))
