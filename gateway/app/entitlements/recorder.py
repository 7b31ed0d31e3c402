"""Charge successful invocations against entitlements and the usage ledger."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from ..catalog.models import Capability
from ..errors import PersistenceFailure, UsageLimitConflict
from .models import (
    InvocationAuditEvent,
    InvocationOutcome,
    InvocationStatus,
    UsageRecord,
    UserAccount,
)
from .resolver import AccountRepository, Resolution

logger = logging.getLogger("gateway.usage")


class InvocationAuditLogger(Protocol):
    """Append-only sink for verification attempts."""

    def log(self, event: InvocationAuditEvent) -> None:
        ...


@dataclass
class UsageRecorder:
    """Persists the effects of a successful upstream call in one transaction."""

    accounts: AccountRepository
    audit_logger: InvocationAuditLogger
    clock: Optional[Callable[[], datetime]] = None

    def _current_time(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return datetime.now(timezone.utc)

    def record(
        self,
        account: UserAccount,
        resolution: Resolution,
        capability: Capability,
        outcome: InvocationOutcome,
    ) -> UsageRecord:
        """Charge one unit to the resolved entitlement.

        The entitlement is addressed by id, so entitlements pruned or appended
        between resolution and recording cannot shift the charge onto another one.
        """

        return self._persist(account, capability, outcome, entitlement_id=resolution.entitlement_id)

    def record_uncounted(
        self,
        account: UserAccount,
        capability: Capability,
        outcome: InvocationOutcome,
    ) -> UsageRecord:
        """Record promoted access: global counter and ledger only."""

        return self._persist(account, capability, outcome, entitlement_id=None)

    def record_failure(self, account: UserAccount, capability: Capability, outcome: InvocationOutcome) -> None:
        if outcome.succeeded:
            raise ValueError("record_failure requires a failed invocation outcome")
        self.audit_logger.log(
            InvocationAuditEvent(
                verification_id=outcome.verification_id,
                user_id=account.user_id,
                capability_key=capability.capability_key,
                status=InvocationStatus.FAILED,
                input_payload=outcome.request_payload,
                error_message=outcome.error_message,
                promoted=account.is_promoted_for(capability),
                occurred_at=self._current_time(),
            )
        )

    def _persist(
        self,
        account: UserAccount,
        capability: Capability,
        outcome: InvocationOutcome,
        *,
        entitlement_id: Optional[str],
    ) -> UsageRecord:
        if not outcome.succeeded:
            raise ValueError("Usage may only be recorded for a successful invocation")

        now = self._current_time()
        context = {
            "user_id": account.user_id,
            "capability_key": capability.capability_key,
            "entitlement_id": entitlement_id,
            "verification_id": outcome.verification_id,
        }
        try:
            record = self.accounts.record_usage(
                account.user_id,
                entitlement_id=entitlement_id,
                capability_key=capability.capability_key,
                at=now,
            )
        except Exception as exc:
            logger.exception("Usage reconciliation gap: invocation succeeded but was not recorded", extra=context)
            raise PersistenceFailure(detail={"verification_id": outcome.verification_id}) from exc

        if record is None:
            # entitlement_id is always set here; uncounted writes cannot lose the race
            logger.error("Usage limit race lost after a successful invocation", extra=context)
            raise UsageLimitConflict(entitlement_id or "")

        self.audit_logger.log(
            InvocationAuditEvent(
                verification_id=outcome.verification_id,
                user_id=account.user_id,
                capability_key=capability.capability_key,
                status=InvocationStatus.SUCCESS,
                input_payload=outcome.request_payload,
                result_data=outcome.data,
                entitlement_id=entitlement_id,
                promoted=entitlement_id is None,
                occurred_at=now,
            )
        )
        logger.debug("Usage recorded", extra={**context, "ledger_count": record.count})
        return record


__all__ = ["InvocationAuditLogger", "UsageRecorder"]
