"""Plan purchases: pricing, coupons, order creation and payment verification."""

from .models import (
    CheckoutOrder,
    Coupon,
    DiscountType,
    PaymentCompletion,
    PaymentOrder,
    PaymentOrderStatus,
    PurchaseStatistic,
)
from .service import (
    HMACSignatureVerifier,
    PaymentGateway,
    PaymentRepository,
    PaymentService,
    SignatureVerifier,
)

__all__ = [
    "CheckoutOrder",
    "Coupon",
    "DiscountType",
    "HMACSignatureVerifier",
    "PaymentCompletion",
    "PaymentGateway",
    "PaymentOrder",
    "PaymentOrderStatus",
    "PaymentRepository",
    "PaymentService",
    "PurchaseStatistic",
    "SignatureVerifier",
]
