"""Administrative API routes for entitlements, promotions, the catalog, coupons and statistics."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from ..catalog.models import Capability
from ..errors import GatewayError
from ..payments import Coupon
from ..schemas.admin import (
    BundlePlanCreateRequest,
    CapabilityCreateRequest,
    CouponCreateRequest,
    CouponListResponse,
    EntitlementResponse,
    ExtendEntitlementRequest,
    GrantEntitlementRequest,
    PromotionRequest,
    PurchaseStatsResponse,
    RevokeEntitlementRequest,
    RevokeEntitlementResponse,
    ServiceUsageStat,
    ServiceUsageStatsResponse,
)
from ..schemas.catalog import BundlePlanListResponse
from ..schemas.usage import EntitlementView, UsageSummaryResponse
from ..services.catalog import get_catalog_service
from ..services.entitlements import get_lifecycle_manager
from ..services.payments import get_payment_service
from .dependencies import current_admin as _get_current_admin

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


@router.post("/users/{user_id}/promotions", response_model=UsageSummaryResponse)
def promote_user(
    user_id: str,
    payload: PromotionRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> UsageSummaryResponse:
    try:
        account = get_lifecycle_manager().promote(user_id, payload.group)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return UsageSummaryResponse.from_account(account, _now())


@router.delete("/users/{user_id}/promotions/{group}", response_model=UsageSummaryResponse)
def demote_user(
    user_id: str,
    group: str,
    *,
    current_admin=Depends(_get_current_admin),
) -> UsageSummaryResponse:
    try:
        account = get_lifecycle_manager().demote(user_id, group)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    return UsageSummaryResponse.from_account(account, _now())


@router.post(
    "/users/{user_id}/entitlements",
    response_model=EntitlementResponse,
    status_code=status.HTTP_201_CREATED,
)
def grant_entitlement(
    user_id: str,
    payload: GrantEntitlementRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> EntitlementResponse:
    try:
        entitlement = get_lifecycle_manager().grant_or_renew(
            user_id,
            payload.coverage,
            payload.cycle,
            payload.usage_limit,
            duration=payload.duration(),
        )
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return EntitlementResponse(entitlement=EntitlementView.from_entitlement(entitlement, _now()))


@router.post("/users/{user_id}/entitlements/extend", response_model=EntitlementResponse)
def extend_entitlement(
    user_id: str,
    payload: ExtendEntitlementRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> EntitlementResponse:
    try:
        entitlement = get_lifecycle_manager().extend(user_id, payload.coverage, timedelta(days=payload.days))
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    return EntitlementResponse(entitlement=EntitlementView.from_entitlement(entitlement, _now()))


@router.post("/users/{user_id}/entitlements/revoke", response_model=RevokeEntitlementResponse)
def revoke_entitlement(
    user_id: str,
    payload: RevokeEntitlementRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> RevokeEntitlementResponse:
    try:
        removed = get_lifecycle_manager().revoke(user_id, payload.coverage)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc
    return RevokeEntitlementResponse(removed=removed)


@router.post("/catalog/capabilities", response_model=Capability, status_code=status.HTTP_201_CREATED)
def create_capability(
    payload: CapabilityCreateRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> Capability:
    try:
        return get_catalog_service().add_capability(payload.to_capability())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/catalog/plans", response_model=BundlePlanListResponse, status_code=status.HTTP_201_CREATED)
def create_bundle_plans(
    payload: BundlePlanCreateRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> BundlePlanListResponse:
    try:
        plans = get_catalog_service().add_bundle_plans([item.to_plan() for item in payload.plans])
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return BundlePlanListResponse(plans=list(plans))


@router.post("/coupons", response_model=Coupon, status_code=status.HTTP_201_CREATED)
def create_coupon(
    payload: CouponCreateRequest,
    *,
    current_admin=Depends(_get_current_admin),
) -> Coupon:
    try:
        return get_payment_service().add_coupon(payload.to_coupon())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/coupons", response_model=CouponListResponse)
def list_coupons(*, current_admin=Depends(_get_current_admin)) -> CouponListResponse:
    return CouponListResponse(coupons=list(get_payment_service().list_coupons()))


@router.get("/coupons/{code}", response_model=Coupon)
def get_coupon(code: str, *, current_admin=Depends(_get_current_admin)) -> Coupon:
    try:
        return get_payment_service().get_coupon(code)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc


@router.post("/coupons/{code}/deactivate", response_model=Coupon)
def deactivate_coupon(code: str, *, current_admin=Depends(_get_current_admin)) -> Coupon:
    try:
        return get_payment_service().deactivate_coupon(code)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc


@router.get("/stats/services", response_model=ServiceUsageStatsResponse)
def get_service_usage_stats(*, current_admin=Depends(_get_current_admin)) -> ServiceUsageStatsResponse:
    capabilities = get_catalog_service().usage_statistics()
    return ServiceUsageStatsResponse(
        services=[ServiceUsageStat.from_capability(capability) for capability in capabilities]
    )


@router.get("/stats/purchases", response_model=PurchaseStatsResponse)
def get_purchase_stats(*, current_admin=Depends(_get_current_admin)) -> PurchaseStatsResponse:
    return PurchaseStatsResponse(plans=list(get_payment_service().purchase_statistics()))
