"""API schemas for administrative endpoints."""
from __future__ import annotations

from datetime import timedelta
from typing import List, Optional, Tuple

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from ..catalog.models import BillingCycle, BundlePlan, CallingConvention, Capability, PlanPricing
from ..entitlements.models import Coverage
from ..payments import Coupon, DiscountType, PurchaseStatistic
from .usage import EntitlementView


class PromotionRequest(BaseModel):
    group: str = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class GrantEntitlementRequest(BaseModel):
    coverage: Coverage
    cycle: BillingCycle
    usage_limit: int = Field(alias="usageLimit", ge=0)
    duration_days: Optional[int] = Field(alias="durationDays", default=None, ge=1)

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _promotional_needs_duration(self) -> "GrantEntitlementRequest":
        if self.cycle == BillingCycle.PROMOTIONAL and self.duration_days is None:
            raise ValueError("durationDays is required for promotional grants")
        return self

    def duration(self) -> Optional[timedelta]:
        return timedelta(days=self.duration_days) if self.duration_days is not None else None


class ExtendEntitlementRequest(BaseModel):
    coverage: Coverage
    days: int

    model_config = ConfigDict(populate_by_name=True)


class RevokeEntitlementRequest(BaseModel):
    coverage: Coverage

    model_config = ConfigDict(populate_by_name=True)


class RevokeEntitlementResponse(BaseModel):
    removed: int

    model_config = ConfigDict(populate_by_name=True)


class EntitlementResponse(BaseModel):
    entitlement: EntitlementView

    model_config = ConfigDict(populate_by_name=True)


class CapabilityCreateRequest(BaseModel):
    service_key: str = Field(alias="serviceKey", min_length=1)
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    subcategory: Optional[str] = None
    description: Optional[str] = None
    endpoint: str = Field(min_length=1)
    calling_convention: CallingConvention = Field(alias="callingConvention", default=CallingConvention.JSON)
    is_active: bool = Field(alias="isActive", default=True)

    model_config = ConfigDict(populate_by_name=True)

    def to_capability(self) -> Capability:
        return Capability(
            capability_key=self.service_key,
            name=self.name,
            category=self.category,
            subcategory=self.subcategory,
            description=self.description,
            endpoint=self.endpoint,
            calling_convention=self.calling_convention,
            is_active=self.is_active,
        )


class BundlePlanInput(BaseModel):
    name: str = Field(min_length=1)
    monthly: PlanPricing
    yearly: PlanPricing
    service_keys: List[str] = Field(alias="serviceKeys", default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def to_plan(self) -> BundlePlan:
        keys: Tuple[str, ...] = tuple(dict.fromkeys(key.strip() for key in self.service_keys if key.strip()))
        return BundlePlan(
            name=self.name.strip(),
            monthly=self.monthly,
            yearly=self.yearly,
            included_capability_keys=keys,
        )


class BundlePlanCreateRequest(BaseModel):
    plans: List[BundlePlanInput] = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CouponCreateRequest(BaseModel):
    code: str = Field(min_length=1)
    description: str = ""
    discount_type: DiscountType = Field(alias="discountType")
    discount_value: int = Field(alias="discountValue", ge=0)
    is_active: bool = Field(alias="isActive", default=True)
    expires_at: Optional[AwareDatetime] = Field(alias="expiresAt", default=None)
    min_amount: int = Field(alias="minAmount", default=0, ge=0)
    applicable_coverages: List[str] = Field(alias="applicableCoverages", default_factory=list)
    max_uses: Optional[int] = Field(alias="maxUses", default=1, ge=0)

    model_config = ConfigDict(populate_by_name=True)

    def to_coupon(self) -> Coupon:
        return Coupon(
            code=self.code,
            description=self.description,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            is_active=self.is_active,
            expires_at=self.expires_at,
            min_amount=self.min_amount,
            applicable_coverages=tuple(self.applicable_coverages),
            max_uses=self.max_uses,
        )


class CouponListResponse(BaseModel):
    coupons: List[Coupon]

    model_config = ConfigDict(populate_by_name=True)


class ServiceUsageStat(BaseModel):
    service_key: str = Field(alias="serviceKey")
    name: str
    category: str
    subcategory: Optional[str] = None
    total_invocations: int = Field(alias="totalInvocations")
    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_capability(cls, capability: Capability) -> "ServiceUsageStat":
        return cls(
            service_key=capability.capability_key,
            name=capability.name,
            category=capability.category,
            subcategory=capability.subcategory,
            total_invocations=capability.global_invocation_count,
            is_active=capability.is_active,
        )


class ServiceUsageStatsResponse(BaseModel):
    services: List[ServiceUsageStat]

    model_config = ConfigDict(populate_by_name=True)


class PurchaseStatsResponse(BaseModel):
    plans: List[PurchaseStatistic]

    model_config = ConfigDict(populate_by_name=True)
