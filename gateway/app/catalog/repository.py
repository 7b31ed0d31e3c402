"""Persistence layer for catalog objects."""
from __future__ import annotations

from typing import List, Optional, Sequence

from ..persistence import PostgresRepository
from .models import BundlePlan, CallingConvention, Capability, PlanPricing


def _row_to_capability(row: dict) -> Capability:
    return Capability(
        capability_key=row["capability_key"],
        name=row["name"],
        category=row["category"],
        subcategory=row.get("subcategory"),
        description=row.get("description"),
        is_active=bool(row["is_active"]),
        global_invocation_count=int(row["global_invocation_count"]),
        endpoint=row["endpoint"],
        calling_convention=CallingConvention(row["calling_convention"]),
    )


def _row_to_bundle_plan(row: dict) -> BundlePlan:
    return BundlePlan(
        name=row["name"],
        monthly=PlanPricing(price=int(row["monthly_price"]), usage_limit=int(row["monthly_usage_limit"])),
        yearly=PlanPricing(price=int(row["yearly_price"]), usage_limit=int(row["yearly_usage_limit"])),
        included_capability_keys=tuple(row.get("included_capability_keys") or ()),
    )


_BUNDLE_PLAN_SELECT = """
    SELECT plan.*,
           COALESCE(
               ARRAY_AGG(link.capability_key ORDER BY link.capability_key)
                   FILTER (WHERE link.capability_key IS NOT NULL),
               '{}'
           ) AS included_capability_keys
    FROM gateway_bundle_plans AS plan
    LEFT JOIN gateway_bundle_plan_capabilities AS link ON link.plan_name = plan.name
"""


class PostgresCatalogRepository(PostgresRepository):
    """Concrete repository persisting capabilities and bundle plans in PostgreSQL."""

    def get_capability(self, capability_key: str) -> Optional[Capability]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM gateway_capabilities
                WHERE capability_key = %s
                LIMIT 1
                """,
                (capability_key,),
            )
            row = cursor.fetchone()
            return _row_to_capability(row) if row else None

    def find_active_capability(self, capability_key: str) -> Optional[Capability]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM gateway_capabilities
                WHERE capability_key = %s AND is_active
                LIMIT 1
                """,
                (capability_key,),
            )
            row = cursor.fetchone()
            return _row_to_capability(row) if row else None

    def list_active_capabilities(self) -> List[Capability]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM gateway_capabilities
                WHERE is_active
                ORDER BY category, subcategory NULLS FIRST, name
                """
            )
            return [_row_to_capability(row) for row in cursor.fetchall() or []]

    def list_all_capabilities(self) -> List[Capability]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM gateway_capabilities ORDER BY capability_key")
            return [_row_to_capability(row) for row in cursor.fetchall() or []]

    def find_plans_including(self, capability_key: str) -> List[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT plan_name
                FROM gateway_bundle_plan_capabilities
                WHERE capability_key = %s
                ORDER BY plan_name
                """,
                (capability_key,),
            )
            return [row["plan_name"] for row in cursor.fetchall() or []]

    def get_bundle_plan(self, name: str) -> Optional[BundlePlan]:
        with self._cursor() as cursor:
            cursor.execute(
                _BUNDLE_PLAN_SELECT + " WHERE plan.name = %s GROUP BY plan.name",
                (name,),
            )
            row = cursor.fetchone()
            return _row_to_bundle_plan(row) if row else None

    def list_bundle_plans(self) -> List[BundlePlan]:
        with self._cursor() as cursor:
            cursor.execute(_BUNDLE_PLAN_SELECT + " GROUP BY plan.name ORDER BY plan.name")
            return [_row_to_bundle_plan(row) for row in cursor.fetchall() or []]

    def save_capability(self, capability: Capability) -> Capability:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO gateway_capabilities (
                    capability_key,
                    name,
                    category,
                    subcategory,
                    description,
                    is_active,
                    global_invocation_count,
                    endpoint,
                    calling_convention
                )
                VALUES (%(capability_key)s, %(name)s, %(category)s, %(subcategory)s,
                        %(description)s, %(is_active)s, %(global_invocation_count)s,
                        %(endpoint)s, %(calling_convention)s)
                ON CONFLICT (capability_key) DO UPDATE SET
                    name = EXCLUDED.name,
                    category = EXCLUDED.category,
                    subcategory = EXCLUDED.subcategory,
                    description = EXCLUDED.description,
                    is_active = EXCLUDED.is_active,
                    endpoint = EXCLUDED.endpoint,
                    calling_convention = EXCLUDED.calling_convention,
                    updated_at = NOW()
                RETURNING *
                """,
                {
                    "capability_key": capability.capability_key,
                    "name": capability.name,
                    "category": capability.category,
                    "subcategory": capability.subcategory,
                    "description": capability.description,
                    "is_active": capability.is_active,
                    "global_invocation_count": capability.global_invocation_count,
                    "endpoint": capability.endpoint,
                    "calling_convention": capability.calling_convention.value,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist capability")
            return _row_to_capability(row)

    def save_bundle_plans(self, plans: Sequence[BundlePlan]) -> List[BundlePlan]:
        with self._cursor() as cursor:
            for plan in plans:
                cursor.execute(
                    """
                    INSERT INTO gateway_bundle_plans (
                        name,
                        monthly_price,
                        monthly_usage_limit,
                        yearly_price,
                        yearly_usage_limit
                    )
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        plan.name,
                        plan.monthly.price,
                        plan.monthly.usage_limit,
                        plan.yearly.price,
                        plan.yearly.usage_limit,
                    ),
                )
                for capability_key in plan.included_capability_keys:
                    cursor.execute(
                        """
                        INSERT INTO gateway_bundle_plan_capabilities (plan_name, capability_key)
                        VALUES (%s, %s)
                        ON CONFLICT DO NOTHING
                        """,
                        (plan.name, capability_key),
                    )
        return list(plans)


__all__ = ["PostgresCatalogRepository"]
