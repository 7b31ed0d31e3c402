"""Error taxonomy surfaced by the entitlement, usage and payment flows."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class GatewayError(Exception):
    """Represents an actionable gateway failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class CapabilityNotFound(GatewayError):
    def __init__(self, capability_key: str) -> None:
        super().__init__(
            code="capability_not_found",
            message=f"Service with key '{capability_key}' not found or is inactive.",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"capability_key": capability_key},
        )


class NoValidEntitlement(GatewayError):
    """Raised when no entitlement can pay for the requested capability.

    Clients route this to the purchase flow.
    """

    def __init__(self, capability_key: str, *, pruned: int = 0) -> None:
        super().__init__(
            code="subscription_required",
            message=(
                f"You do not have an active subscription covering '{capability_key}'. "
                "Please subscribe to use this service."
            ),
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"capability_key": capability_key, "pruned_entitlements": pruned},
        )


class AccountNotFound(GatewayError):
    def __init__(self, user_id: str) -> None:
        super().__init__(
            code="account_not_found",
            message="User not found.",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"user_id": user_id},
        )


class EntitlementNotFound(GatewayError):
    def __init__(self, user_id: str, coverage: str) -> None:
        super().__init__(
            code="entitlement_not_found",
            message=f"No entitlement for {coverage} exists for this user.",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"user_id": user_id, "coverage": coverage},
        )


class InvalidExtension(GatewayError):
    def __init__(self, current_expires_at: datetime, requested_expires_at: datetime) -> None:
        super().__init__(
            code="invalid_extension",
            message="Extension must move the expiry date forward.",
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "current_expires_at": current_expires_at.isoformat(),
                "requested_expires_at": requested_expires_at.isoformat(),
            },
        )


class ExternalInvocationFailure(GatewayError):
    """The upstream verification provider failed, timed out or was unreachable."""

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        response_snippet: Optional[str] = None,
    ) -> None:
        detail: Dict[str, Any] = {}
        if upstream_status is not None:
            detail["upstream_status"] = upstream_status
        if response_snippet:
            detail["response_snippet"] = response_snippet
        super().__init__(
            code="upstream_failed",
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail or None,
        )


class PersistenceFailure(GatewayError):
    """Usage could not be persisted after the upstream call already happened."""

    def __init__(
        self,
        message: str = "Usage could not be recorded; the request has been flagged for review.",
        *,
        code: str = "persistence_failed",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(code=code, message=message, status_code=status_code, detail=detail)


class UsageLimitConflict(PersistenceFailure):
    """A concurrent invocation consumed the last unit of the entitlement first."""

    def __init__(self, entitlement_id: str) -> None:
        super().__init__(
            "The entitlement was exhausted by a concurrent request.",
            code="usage_conflict",
            status_code=status.HTTP_409_CONFLICT,
            detail={"entitlement_id": entitlement_id},
        )


class PaymentOrderNotFound(GatewayError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            code="payment_order_not_found",
            message="Payment order not found.",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"order_id": order_id},
        )


class PaymentAlreadyProcessed(GatewayError):
    def __init__(self, order_id: str, order_status: str) -> None:
        super().__init__(
            code="payment_already_processed",
            message=f"This payment has already been processed with status: {order_status}.",
            status_code=status.HTTP_409_CONFLICT,
            detail={"order_id": order_id, "status": order_status},
        )


class PaymentSignatureMismatch(GatewayError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            code="payment_signature_invalid",
            message="Payment verification failed. Invalid signature.",
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"order_id": order_id},
        )


class CouponNotFound(GatewayError):
    def __init__(self, code: str) -> None:
        super().__init__(
            code="coupon_not_found",
            message=f"Coupon '{code}' not found.",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"coupon_code": code},
        )


class PlanPricingNotFound(GatewayError):
    def __init__(self, coverage: str, cycle: str) -> None:
        super().__init__(
            code="plan_pricing_not_found",
            message=f"Pricing for plan '{coverage} - {cycle}' not found.",
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"coverage": coverage, "cycle": cycle},
        )


__all__ = [
    "AccountNotFound",
    "CapabilityNotFound",
    "CouponNotFound",
    "EntitlementNotFound",
    "ExternalInvocationFailure",
    "GatewayError",
    "InvalidExtension",
    "NoValidEntitlement",
    "PaymentAlreadyProcessed",
    "PaymentOrderNotFound",
    "PaymentSignatureMismatch",
    "PersistenceFailure",
    "PlanPricingNotFound",
    "UsageLimitConflict",
]
