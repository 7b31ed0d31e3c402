"""Order creation and payment verification for plan purchases."""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from ..catalog.models import BillingCycle, PlanPricing
from ..catalog.plans import get_standard_pricing
from ..catalog.service import CatalogRepository
from ..entitlements.lifecycle import EntitlementLifecycleManager
from ..entitlements.models import Coverage, CoverageKind
from ..errors import (
    CouponNotFound,
    PaymentAlreadyProcessed,
    PaymentOrderNotFound,
    PaymentSignatureMismatch,
    PlanPricingNotFound,
)
from .models import (
    CheckoutOrder,
    Coupon,
    PaymentCompletion,
    PaymentOrder,
    PaymentOrderStatus,
    PurchaseStatistic,
)

logger = logging.getLogger("gateway.payments")


class PaymentGateway(Protocol):
    """External payment processor integration."""

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str],
    ) -> Dict[str, Any]:
        """Create a provider order and return its payload, including ``id``."""


class SignatureVerifier(Protocol):
    def verify(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        ...


class PaymentRepository(Protocol):
    """Persistence for payment orders and coupons."""

    def save_order(self, order: PaymentOrder) -> PaymentOrder:
        ...

    def get_order(self, order_id: str) -> Optional[PaymentOrder]:
        ...

    def list_orders_for_user(self, user_id: str, *, limit: int = 50) -> Sequence[PaymentOrder]:
        ...

    def mark_order_completed(self, order_id: str, *, payment_id: str, at: datetime) -> Optional[PaymentOrder]:
        """Move the order from pending to completed, returning ``None`` when it was not pending."""

    def mark_order_failed(self, order_id: str, *, reason: str, at: datetime, error: Optional[str] = None) -> Optional[PaymentOrder]:
        ...

    def summarize_completed_orders(self) -> Sequence[PurchaseStatistic]:
        ...

    def get_coupon(self, code: str) -> Optional[Coupon]:
        ...

    def save_coupon(self, coupon: Coupon) -> Coupon:
        ...

    def list_coupons(self) -> Sequence[Coupon]:
        ...

    def set_coupon_active(self, code: str, is_active: bool) -> Optional[Coupon]:
        ...

    def increment_coupon_usage(self, code: str) -> bool:
        ...


class HMACSignatureVerifier:
    """Checks the hex HMAC-SHA256 of ``"{order_id}|{payment_id}"`` sent back by the gateway."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("secret must be provided")
        self._secret = secret.encode("utf-8")

    def sign(self, gateway_order_id: str, payment_id: str) -> str:
        message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        expected = self.sign(gateway_order_id, payment_id)
        return hmac.compare_digest(expected, signature or "")


@dataclass
class PaymentService:
    """Prices plans, applies coupons and grants entitlements once payment is verified."""

    repository: PaymentRepository
    catalog: CatalogRepository
    gateway: PaymentGateway
    signature_verifier: SignatureVerifier
    lifecycle: EntitlementLifecycleManager
    currency: str = "INR"
    key_id: Optional[str] = None
    clock: Optional[Callable[[], datetime]] = None

    def _current_time(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return datetime.now(timezone.utc)

    def price_for(self, coverage: Coverage, cycle: BillingCycle) -> PlanPricing:
        """Standard pricing for category plans, catalog pricing for bundle plans."""

        if cycle == BillingCycle.PROMOTIONAL:
            raise PlanPricingNotFound(coverage.name, cycle.value)
        if coverage.kind == CoverageKind.BUNDLE:
            plan = self.catalog.get_bundle_plan(coverage.name)
            if plan is None:
                raise PlanPricingNotFound(coverage.name, cycle.value)
            return plan.pricing_for(cycle)
        if coverage.kind != CoverageKind.CATEGORY:
            raise PlanPricingNotFound(coverage.name, cycle.value)
        try:
            return get_standard_pricing(coverage.name, cycle)
        except KeyError as exc:
            raise PlanPricingNotFound(coverage.name, cycle.value) from exc

    def _redeemable_coupon(
        self, coupon_code: Optional[str], *, amount: int, coverage: Coverage, now: datetime
    ) -> Optional[Coupon]:
        if not coupon_code or not coupon_code.strip():
            return None
        coupon = self.repository.get_coupon(coupon_code.strip().upper())
        if coupon is None or not coupon.is_redeemable(amount=amount, coverage_name=coverage.name, now=now):
            logger.info("Coupon %s not applicable to %s", coupon_code, coverage)
            return None
        return coupon

    def create_order(
        self,
        user_id: str,
        coverage: Coverage,
        cycle: BillingCycle,
        coupon_code: Optional[str] = None,
    ) -> CheckoutOrder:
        pricing = self.price_for(coverage, cycle)
        now = self._current_time()
        coupon = self._redeemable_coupon(coupon_code, amount=pricing.price, coverage=coverage, now=now)
        discount = coupon.discount_for(pricing.price) if coupon else 0
        amount = max(pricing.price - discount, 0)

        order = PaymentOrder(
            user_id=user_id,
            coverage=coverage,
            cycle=cycle,
            amount=amount,
            original_amount=pricing.price,
            discount_applied=discount,
            usage_limit=pricing.usage_limit,
            currency=self.currency,
            coupon_code=coupon.code if coupon else None,
            created_at=now,
            updated_at=now,
        )

        if amount == 0:
            entitlement = self.lifecycle.grant_or_renew(user_id, coverage, cycle, pricing.usage_limit)
            stored = self.repository.save_order(
                order.model_copy(update={"status": PaymentOrderStatus.COMPLETED})
            )
            if coupon is not None:
                self.repository.increment_coupon_usage(coupon.code)
            logger.info(
                "Order %s fully discounted; entitlement granted without payment",
                stored.order_id,
                extra={"user_id": user_id, "coverage": str(coverage), "coupon_code": stored.coupon_code},
            )
            return CheckoutOrder(order=stored, payment_skipped=True, entitlement=entitlement)

        pending = self.repository.save_order(order)
        gateway_order = self.gateway.create_order(
            amount=amount,
            currency=self.currency,
            receipt=pending.order_id,
            notes={"user_id": user_id, "coverage": str(coverage), "cycle": cycle.value},
        )
        persisted = self.repository.save_order(
            pending.model_copy(
                update={"gateway_order_id": gateway_order.get("id"), "updated_at": self._current_time()}
            )
        )
        logger.info(
            "Payment order %s created amount=%s %s",
            persisted.order_id,
            amount,
            self.currency,
            extra={"user_id": user_id, "gateway_order_id": persisted.gateway_order_id},
        )
        return CheckoutOrder(order=persisted, key_id=self.key_id, gateway_order=gateway_order)

    def verify_payment(
        self,
        order_id: str,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        *,
        user_id: Optional[str] = None,
    ) -> PaymentCompletion:
        """Verify the gateway signature and grant or renew the purchased entitlement.

        The pending to completed transition is conditional, so a replayed
        verification never grants twice.
        """

        order = self.repository.get_order(order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise PaymentOrderNotFound(order_id)
        if order.status != PaymentOrderStatus.PENDING:
            raise PaymentAlreadyProcessed(order_id, order.status.value)

        signed_order_id = order.gateway_order_id or gateway_order_id
        if not self.signature_verifier.verify(signed_order_id, payment_id, signature):
            self.repository.mark_order_failed(
                order_id,
                reason="Payment verification failed: Signature mismatch.",
                at=self._current_time(),
            )
            logger.warning("Payment signature mismatch for order %s", order_id, extra={"user_id": order.user_id})
            raise PaymentSignatureMismatch(order_id)

        completed = self.repository.mark_order_completed(order_id, payment_id=payment_id, at=self._current_time())
        if completed is None:
            current = self.repository.get_order(order_id)
            current_status = current.status.value if current else PaymentOrderStatus.COMPLETED.value
            raise PaymentAlreadyProcessed(order_id, current_status)

        try:
            entitlement = self.lifecycle.grant_or_renew(
                completed.user_id,
                completed.coverage,
                completed.cycle,
                completed.usage_limit,
            )
        except Exception as exc:
            logger.exception(
                "Entitlement activation failed after payment; order flagged for manual review",
                extra={"order_id": order_id, "payment_id": payment_id},
            )
            self.repository.mark_order_failed(
                order_id,
                reason="Subscription activation failed after payment.",
                at=self._current_time(),
                error=str(exc),
            )
            raise

        if completed.coupon_code:
            self.repository.increment_coupon_usage(completed.coupon_code)

        logger.info(
            "Payment verified for order %s",
            order_id,
            extra={"user_id": completed.user_id, "entitlement_id": entitlement.entitlement_id},
        )
        return PaymentCompletion(order=completed, entitlement=entitlement)

    def list_orders(self, user_id: str, *, limit: int = 50) -> Sequence[PaymentOrder]:
        return self.repository.list_orders_for_user(user_id, limit=limit)

    def purchase_statistics(self) -> Sequence[PurchaseStatistic]:
        """Completed purchase counts and revenue per plan, highest revenue first."""

        return self.repository.summarize_completed_orders()

    def add_coupon(self, coupon: Coupon) -> Coupon:
        if self.repository.get_coupon(coupon.code) is not None:
            raise ValueError(f"Coupon '{coupon.code}' already exists.")
        stored = self.repository.save_coupon(coupon)
        logger.info("Coupon %s created", stored.code)
        return stored

    def list_coupons(self) -> Sequence[Coupon]:
        return self.repository.list_coupons()

    def get_coupon(self, code: str) -> Coupon:
        normalized = code.strip().upper()
        coupon = self.repository.get_coupon(normalized)
        if coupon is None:
            raise CouponNotFound(normalized)
        return coupon

    def deactivate_coupon(self, code: str) -> Coupon:
        """Withdraw a coupon from future checkouts while keeping its redemption history."""

        normalized = code.strip().upper()
        coupon = self.repository.set_coupon_active(normalized, False)
        if coupon is None:
            raise CouponNotFound(normalized)
        logger.info("Coupon %s deactivated", coupon.code)
        return coupon


__all__ = [
    "HMACSignatureVerifier",
    "PaymentGateway",
    "PaymentRepository",
    "PaymentService",
    "SignatureVerifier",
]
