"""Domain models for payment orders and coupons."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ..catalog.models import BillingCycle
from ..entitlements.models import Coverage, Entitlement


class PaymentOrderStatus(str, Enum):
    """Lifecycle status of a payment order."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(BaseModel):
    """Discount code redeemable against plan purchases.

    Amounts are in minor currency units. An empty ``applicable_coverages``
    means the coupon applies to every plan.
    """

    code: str = Field(min_length=1)
    description: str = ""
    discount_type: DiscountType
    discount_value: int = Field(ge=0)
    is_active: bool = True
    expires_at: Optional[AwareDatetime] = None
    min_amount: int = Field(default=0, ge=0)
    applicable_coverages: Tuple[str, ...] = Field(default_factory=tuple)
    max_uses: Optional[int] = Field(default=1, ge=0)
    times_used: int = Field(default=0, ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("discount_value")
    @classmethod
    def _percentage_within_bounds(cls, value: int, info: ValidationInfo) -> int:
        if info.data.get("discount_type") == DiscountType.PERCENTAGE and value > 100:
            raise ValueError("percentage discounts cannot exceed 100")
        return value

    def is_redeemable(self, *, amount: int, coverage_name: str, now: datetime) -> bool:
        if not self.is_active:
            return False
        if self.expires_at is not None and self.expires_at < now:
            return False
        if self.max_uses and self.times_used >= self.max_uses:
            return False
        if amount < self.min_amount:
            return False
        return not self.applicable_coverages or coverage_name in self.applicable_coverages

    def discount_for(self, amount: int) -> int:
        if self.discount_type == DiscountType.FIXED:
            return min(self.discount_value, amount)
        return min(round(amount * self.discount_value / 100), amount)


def _new_order_id() -> str:
    return f"po_{uuid4().hex}"


class PaymentOrder(BaseModel):
    """A purchase of one billing cycle of a plan, pending until the payment is verified."""

    order_id: str = Field(default_factory=_new_order_id)
    user_id: str
    coverage: Coverage
    cycle: BillingCycle
    status: PaymentOrderStatus = PaymentOrderStatus.PENDING
    amount: int = Field(ge=0)
    original_amount: int = Field(ge=0)
    discount_applied: int = Field(default=0, ge=0)
    usage_limit: int = Field(ge=0)
    currency: str = "INR"
    coupon_code: Optional[str] = None
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutOrder(BaseModel):
    """Result of creating an order; ``payment_skipped`` when a discount made it free."""

    order: PaymentOrder
    payment_skipped: bool = False
    key_id: Optional[str] = None
    gateway_order: Dict[str, Any] = Field(default_factory=dict)
    entitlement: Optional[Entitlement] = None

    model_config = ConfigDict(frozen=True)


class PaymentCompletion(BaseModel):
    """A verified payment together with the entitlement it granted or renewed."""

    order: PaymentOrder
    entitlement: Entitlement

    model_config = ConfigDict(frozen=True)


class PurchaseStatistic(BaseModel):
    """Completed purchases and revenue (minor units) for one plan coverage."""

    coverage: Coverage
    purchase_count: int = Field(ge=0)
    total_revenue: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


__all__ = [
    "CheckoutOrder",
    "Coupon",
    "DiscountType",
    "PaymentCompletion",
    "PaymentOrder",
    "PaymentOrderStatus",
    "PurchaseStatistic",
]
