"""API schemas for payment endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..catalog.models import BillingCycle
from ..entitlements.models import Coverage, Entitlement
from ..payments import CheckoutOrder, PaymentCompletion, PaymentOrder


class CreateOrderRequest(BaseModel):
    coverage: Coverage
    cycle: BillingCycle
    coupon_code: Optional[str] = Field(alias="couponCode", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("cycle")
    @classmethod
    def _purchasable_cycle(cls, value: BillingCycle) -> BillingCycle:
        if value == BillingCycle.PROMOTIONAL:
            raise ValueError("Promotional access cannot be purchased")
        return value


class CreateOrderResponse(BaseModel):
    success: bool = True
    payment_skipped: bool = Field(alias="paymentSkipped")
    order: PaymentOrder
    gateway_order: Dict[str, Any] = Field(alias="gatewayOrder", default_factory=dict)
    key_id: Optional[str] = Field(alias="keyId", default=None)
    entitlement: Optional[Entitlement] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, checkout: CheckoutOrder) -> "CreateOrderResponse":
        return cls(
            payment_skipped=checkout.payment_skipped,
            order=checkout.order,
            gateway_order=checkout.gateway_order,
            key_id=checkout.key_id,
            entitlement=checkout.entitlement,
        )


class VerifyPaymentRequest(BaseModel):
    order_id: str = Field(alias="orderId", min_length=1)
    gateway_order_id: str = Field(alias="gatewayOrderId", min_length=1)
    payment_id: str = Field(alias="paymentId", min_length=1)
    signature: str = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str = "Subscription activated successfully!"
    order: PaymentOrder
    entitlement: Entitlement

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_completion(cls, completion: PaymentCompletion) -> "VerifyPaymentResponse":
        return cls(order=completion.order, entitlement=completion.entitlement)


class PaymentOrderListResponse(BaseModel):
    orders: List[PaymentOrder]

    model_config = ConfigDict(populate_by_name=True)
