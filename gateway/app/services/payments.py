"""Application wiring for plan purchases."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict
from uuid import uuid4

from ...config import get_gateway_config
from ..payments import HMACSignatureVerifier, PaymentGateway, PaymentService
from ..payments.repository import PostgresPaymentRepository
from .catalog import get_catalog_repository
from .entitlements import get_lifecycle_manager

logger = logging.getLogger("gateway.payments")

class LocalSandboxPaymentGateway(PaymentGateway):
    """Minimal gateway implementation for local development and tests."""

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str],
    ) -> Dict[str, Any]:
        order_id = f"order_{uuid4().hex[:14]}"
        logger.debug("Sandbox order %s created for receipt %s", order_id, receipt)
        return {
            "id": order_id,
            "entity": "order",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
            "notes": notes,
            "created_at": int(datetime.now(timezone.utc).timestamp()),
        }


@lru_cache(maxsize=1)
def get_payment_service() -> PaymentService:
    config = get_gateway_config()
    if config.payment_provider != "sandbox":
        raise RuntimeError(f"Unsupported payment provider: {config.payment_provider}")

    if not config.payment_key_secret:
        raise RuntimeError("Payment signing secret is not configured: PAYMENT_KEY_SECRET")

    return PaymentService(
        repository=PostgresPaymentRepository(),
        catalog=get_catalog_repository(),
        gateway=LocalSandboxPaymentGateway(),
        signature_verifier=HMACSignatureVerifier(config.payment_key_secret),
        lifecycle=get_lifecycle_manager(),
        currency=config.payment_currency,
        key_id=config.payment_key_id,
    )


__all__ = ["LocalSandboxPaymentGateway", "get_payment_service"]
