"""Persistence layer for payment orders and coupons."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import psycopg2.extras

from ..catalog.models import BillingCycle
from ..entitlements.models import Coverage, CoverageKind
from ..persistence import PostgresRepository
from .models import Coupon, DiscountType, PaymentOrder, PaymentOrderStatus, PurchaseStatistic


def _row_to_order(row: dict) -> PaymentOrder:
    return PaymentOrder(
        order_id=row["order_id"],
        user_id=str(row["user_id"]),
        coverage=Coverage(kind=CoverageKind(row["coverage_kind"]), name=row["coverage_name"]),
        cycle=BillingCycle(row["cycle"]),
        status=PaymentOrderStatus(row["status"]),
        amount=int(row["amount"]),
        original_amount=int(row["original_amount"]),
        discount_applied=int(row["discount_applied"]),
        usage_limit=int(row["usage_limit"]),
        currency=row["currency"],
        coupon_code=row.get("coupon_code"),
        gateway_order_id=row.get("gateway_order_id"),
        payment_id=row.get("payment_id"),
        failure_reason=row.get("failure_reason"),
        metadata=row.get("metadata") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_coupon(row: dict) -> Coupon:
    return Coupon(
        code=row["code"],
        description=row.get("description") or "",
        discount_type=DiscountType(row["discount_type"]),
        discount_value=int(row["discount_value"]),
        is_active=bool(row["is_active"]),
        expires_at=row.get("expires_at"),
        min_amount=int(row["min_amount"]),
        applicable_coverages=tuple(row.get("applicable_coverages") or ()),
        max_uses=row.get("max_uses"),
        times_used=int(row["times_used"]),
    )


class PostgresPaymentRepository(PostgresRepository):
    """Concrete repository persisting payment orders and coupons in PostgreSQL."""

    def save_order(self, order: PaymentOrder) -> PaymentOrder:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO gateway_payment_orders (
                    order_id,
                    user_id,
                    coverage_kind,
                    coverage_name,
                    cycle,
                    status,
                    amount,
                    original_amount,
                    discount_applied,
                    usage_limit,
                    currency,
                    coupon_code,
                    gateway_order_id,
                    payment_id,
                    failure_reason,
                    metadata,
                    created_at,
                    updated_at
                )
                VALUES (%(order_id)s, %(user_id)s, %(coverage_kind)s, %(coverage_name)s, %(cycle)s,
                        %(status)s, %(amount)s, %(original_amount)s, %(discount_applied)s,
                        %(usage_limit)s, %(currency)s, %(coupon_code)s, %(gateway_order_id)s,
                        %(payment_id)s, %(failure_reason)s, %(metadata)s, %(created_at)s, %(updated_at)s)
                ON CONFLICT (order_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    gateway_order_id = EXCLUDED.gateway_order_id,
                    payment_id = EXCLUDED.payment_id,
                    failure_reason = EXCLUDED.failure_reason,
                    metadata = EXCLUDED.metadata,
                    updated_at = EXCLUDED.updated_at
                RETURNING *
                """,
                {
                    "order_id": order.order_id,
                    "user_id": order.user_id,
                    "coverage_kind": order.coverage.kind.value,
                    "coverage_name": order.coverage.name,
                    "cycle": order.cycle.value,
                    "status": order.status.value,
                    "amount": order.amount,
                    "original_amount": order.original_amount,
                    "discount_applied": order.discount_applied,
                    "usage_limit": order.usage_limit,
                    "currency": order.currency,
                    "coupon_code": order.coupon_code,
                    "gateway_order_id": order.gateway_order_id,
                    "payment_id": order.payment_id,
                    "failure_reason": order.failure_reason,
                    "metadata": psycopg2.extras.Json(order.metadata),
                    "created_at": order.created_at,
                    "updated_at": order.updated_at,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist payment order")
            return _row_to_order(row)

    def get_order(self, order_id: str) -> Optional[PaymentOrder]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM gateway_payment_orders WHERE order_id = %s", (order_id,))
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def list_orders_for_user(self, user_id: str, *, limit: int = 50) -> List[PaymentOrder]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM gateway_payment_orders
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (user_id, limit),
            )
            return [_row_to_order(row) for row in cursor.fetchall() or []]

    def mark_order_completed(self, order_id: str, *, payment_id: str, at: datetime) -> Optional[PaymentOrder]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE gateway_payment_orders
                SET status = %s, payment_id = %s, updated_at = %s
                WHERE order_id = %s AND status = %s
                RETURNING *
                """,
                (
                    PaymentOrderStatus.COMPLETED.value,
                    payment_id,
                    at,
                    order_id,
                    PaymentOrderStatus.PENDING.value,
                ),
            )
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def mark_order_failed(
        self,
        order_id: str,
        *,
        reason: str,
        at: datetime,
        error: Optional[str] = None,
    ) -> Optional[PaymentOrder]:
        metadata = {"reason": reason}
        if error:
            metadata["error"] = error
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE gateway_payment_orders
                SET status = %s,
                    failure_reason = %s,
                    metadata = COALESCE(metadata, '{}'::jsonb) || %s,
                    updated_at = %s
                WHERE order_id = %s
                RETURNING *
                """,
                (
                    PaymentOrderStatus.FAILED.value,
                    reason,
                    psycopg2.extras.Json(metadata),
                    at,
                    order_id,
                ),
            )
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def summarize_completed_orders(self) -> List[PurchaseStatistic]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT coverage_kind,
                       coverage_name,
                       COUNT(*) AS purchase_count,
                       COALESCE(SUM(amount), 0) AS total_revenue
                FROM gateway_payment_orders
                WHERE status = %s
                GROUP BY coverage_kind, coverage_name
                ORDER BY total_revenue DESC, coverage_name
                """,
                (PaymentOrderStatus.COMPLETED.value,),
            )
            return [
                PurchaseStatistic(
                    coverage=Coverage(kind=CoverageKind(row["coverage_kind"]), name=row["coverage_name"]),
                    purchase_count=int(row["purchase_count"]),
                    total_revenue=int(row["total_revenue"]),
                )
                for row in cursor.fetchall() or []
            ]

    def get_coupon(self, code: str) -> Optional[Coupon]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM gateway_coupons WHERE code = %s", (code.upper(),))
            row = cursor.fetchone()
            return _row_to_coupon(row) if row else None

    def save_coupon(self, coupon: Coupon) -> Coupon:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO gateway_coupons (
                    code,
                    description,
                    discount_type,
                    discount_value,
                    is_active,
                    expires_at,
                    min_amount,
                    applicable_coverages,
                    max_uses,
                    times_used
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (code) DO UPDATE SET
                    description = EXCLUDED.description,
                    discount_type = EXCLUDED.discount_type,
                    discount_value = EXCLUDED.discount_value,
                    is_active = EXCLUDED.is_active,
                    expires_at = EXCLUDED.expires_at,
                    min_amount = EXCLUDED.min_amount,
                    applicable_coverages = EXCLUDED.applicable_coverages,
                    max_uses = EXCLUDED.max_uses
                RETURNING *
                """,
                (
                    coupon.code,
                    coupon.description,
                    coupon.discount_type.value,
                    coupon.discount_value,
                    coupon.is_active,
                    coupon.expires_at,
                    coupon.min_amount,
                    list(coupon.applicable_coverages),
                    coupon.max_uses,
                    coupon.times_used,
                ),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist coupon")
            return _row_to_coupon(row)

    def list_coupons(self) -> List[Coupon]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM gateway_coupons ORDER BY code")
            return [_row_to_coupon(row) for row in cursor.fetchall()]

    def set_coupon_active(self, code: str, is_active: bool) -> Optional[Coupon]:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE gateway_coupons SET is_active = %s WHERE code = %s RETURNING *",
                (is_active, code.upper()),
            )
            row = cursor.fetchone()
            return _row_to_coupon(row) if row else None

    def increment_coupon_usage(self, code: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE gateway_coupons SET times_used = times_used + 1 WHERE code = %s",
                (code.upper(),),
            )
            return bool(cursor.rowcount)


__all__ = ["PostgresPaymentRepository"]
