"""PostgreSQL persistence for accounts, entitlements, the usage ledger and the audit trail."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Sequence

import psycopg2.extras

from ..catalog.models import BillingCycle
from ..persistence import PostgresRepository
from .models import (
    Coverage,
    CoverageKind,
    Entitlement,
    InvocationAuditEvent,
    UsageRecord,
    UserAccount,
)


def _row_to_entitlement(row: dict) -> Entitlement:
    return Entitlement(
        entitlement_id=row["entitlement_id"],
        coverage=Coverage(kind=CoverageKind(row["coverage_kind"]), name=row["coverage_name"]),
        cycle=BillingCycle(row["cycle"]),
        usage_limit=int(row["usage_limit"]),
        usage_count=int(row["usage_count"]),
        granted_at=row["granted_at"],
        expires_at=row["expires_at"],
        is_promotional=bool(row["is_promotional"]),
    )


def _row_to_usage_record(row: dict) -> UsageRecord:
    timestamps = tuple(row.get("timestamps") or ())
    return UsageRecord(count=int(row["count"]), timestamps=timestamps)


class PostgresAccountRepository(PostgresRepository):
    """Concrete repository storing accounts and their entitlements in PostgreSQL.

    Entitlements keep account order through the ``position`` sequence column.
    """

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT user_id, promoted_capabilities FROM gateway_accounts WHERE user_id = %s",
                (user_id,),
            )
            account_row = cursor.fetchone()
            if not account_row:
                return None

            cursor.execute(
                """
                SELECT *
                FROM gateway_entitlements
                WHERE user_id = %s
                ORDER BY position ASC
                """,
                (user_id,),
            )
            entitlements = tuple(_row_to_entitlement(row) for row in cursor.fetchall() or [])

            cursor.execute(
                "SELECT capability_key, count, timestamps FROM gateway_usage_ledger WHERE user_id = %s",
                (user_id,),
            )
            ledger: Dict[str, UsageRecord] = {
                row["capability_key"]: _row_to_usage_record(row) for row in cursor.fetchall() or []
            }

        return UserAccount(
            user_id=str(account_row["user_id"]),
            promoted_capabilities=frozenset(account_row.get("promoted_capabilities") or ()),
            entitlements=entitlements,
            usage_ledger=ledger,
        )

    def remove_entitlements(self, user_id: str, entitlement_ids: Sequence[str]) -> int:
        if not entitlement_ids:
            return 0
        with self._cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM gateway_entitlements
                WHERE user_id = %s AND entitlement_id = ANY(%s)
                """,
                (user_id, list(entitlement_ids)),
            )
            return cursor.rowcount or 0

    def append_entitlement(self, user_id: str, entitlement: Entitlement) -> Entitlement:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO gateway_entitlements (
                    entitlement_id,
                    user_id,
                    coverage_kind,
                    coverage_name,
                    cycle,
                    usage_limit,
                    usage_count,
                    granted_at,
                    expires_at,
                    is_promotional
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    entitlement.entitlement_id,
                    user_id,
                    entitlement.coverage.kind.value,
                    entitlement.coverage.name,
                    entitlement.cycle.value,
                    entitlement.usage_limit,
                    entitlement.usage_count,
                    entitlement.granted_at,
                    entitlement.expires_at,
                    entitlement.is_promotional,
                ),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist entitlement")
            return _row_to_entitlement(row)

    def save_entitlement(self, user_id: str, entitlement: Entitlement) -> Entitlement:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE gateway_entitlements
                SET cycle = %s,
                    usage_limit = %s,
                    expires_at = %s,
                    is_promotional = %s
                WHERE user_id = %s AND entitlement_id = %s
                RETURNING *
                """,
                (
                    entitlement.cycle.value,
                    entitlement.usage_limit,
                    entitlement.expires_at,
                    entitlement.is_promotional,
                    user_id,
                    entitlement.entitlement_id,
                ),
            )
            row = cursor.fetchone()
            if not row:
                raise LookupError(f"Entitlement {entitlement.entitlement_id} no longer exists")
            return _row_to_entitlement(row)

    def revoke_coverage(self, user_id: str, coverage: Coverage) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM gateway_entitlements
                WHERE user_id = %s AND coverage_kind = %s AND coverage_name = %s
                """,
                (user_id, coverage.kind.value, coverage.name),
            )
            removed = cursor.rowcount or 0
            cursor.execute(
                """
                UPDATE gateway_accounts
                SET promoted_capabilities = array_remove(promoted_capabilities, %s)
                WHERE user_id = %s
                """,
                (coverage.name, user_id),
            )
            return removed

    def add_promoted_capability(self, user_id: str, group: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE gateway_accounts
                SET promoted_capabilities = array_append(promoted_capabilities, %s)
                WHERE user_id = %s AND NOT (%s = ANY(promoted_capabilities))
                """,
                (group, user_id, group),
            )
            return bool(cursor.rowcount)

    def remove_promoted_capability(self, user_id: str, group: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE gateway_accounts
                SET promoted_capabilities = array_remove(promoted_capabilities, %s)
                WHERE user_id = %s AND %s = ANY(promoted_capabilities)
                """,
                (group, user_id, group),
            )
            return bool(cursor.rowcount)

    def record_usage(
        self,
        user_id: str,
        *,
        entitlement_id: Optional[str],
        capability_key: str,
        at: datetime,
    ) -> Optional[UsageRecord]:
        with self._cursor() as cursor:
            if entitlement_id is not None:
                cursor.execute(
                    """
                    UPDATE gateway_entitlements
                    SET usage_count = usage_count + 1
                    WHERE user_id = %s
                      AND entitlement_id = %s
                      AND usage_count < usage_limit
                    """,
                    (user_id, entitlement_id),
                )
                if cursor.rowcount != 1:
                    return None

            cursor.execute(
                """
                UPDATE gateway_capabilities
                SET global_invocation_count = global_invocation_count + 1
                WHERE capability_key = %s
                """,
                (capability_key,),
            )
            cursor.execute(
                """
                INSERT INTO gateway_usage_ledger (user_id, capability_key, count, timestamps)
                VALUES (%s, %s, 1, ARRAY[%s]::timestamptz[])
                ON CONFLICT (user_id, capability_key) DO UPDATE SET
                    timestamps = array_append(gateway_usage_ledger.timestamps, EXCLUDED.timestamps[1]),
                    count = COALESCE(array_length(gateway_usage_ledger.timestamps, 1), 0) + 1
                RETURNING count, timestamps
                """,
                (user_id, capability_key, at),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to update usage ledger")
            return _row_to_usage_record(row)


class PostgresInvocationAuditLogger(PostgresRepository):
    """Writes verification attempts to the append-only audit table."""

    def log(self, event: InvocationAuditEvent) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO gateway_invocation_audit (
                    verification_id,
                    user_id,
                    capability_key,
                    status,
                    input_payload,
                    result_data,
                    error_message,
                    entitlement_id,
                    promoted,
                    occurred_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    event.verification_id,
                    event.user_id,
                    event.capability_key,
                    event.status.value,
                    psycopg2.extras.Json(dict(event.input_payload)),
                    psycopg2.extras.Json(dict(event.result_data)) if event.result_data is not None else None,
                    event.error_message,
                    event.entitlement_id,
                    event.promoted,
                    event.occurred_at,
                ),
            )


__all__ = ["PostgresAccountRepository", "PostgresInvocationAuditLogger"]
