"""Authorize, invoke and charge a capability on behalf of a user."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from uuid import uuid4

from ..catalog.service import CatalogService
from ..entitlements.models import InvocationOutcome
from ..entitlements.recorder import UsageRecorder
from ..entitlements.resolver import AccountRepository, EntitlementResolver, Resolution
from ..errors import AccountNotFound, ExternalInvocationFailure
from .client import VerificationClient
from .models import VerificationResult

logger = logging.getLogger("gateway.verification")


@dataclass
class VerificationService:
    """Runs the promoted check, resolution, external call and usage recording in order."""

    catalog: CatalogService
    accounts: AccountRepository
    resolver: EntitlementResolver
    recorder: UsageRecorder
    client: VerificationClient

    def invoke(self, user_id: str, capability_key: str, payload: Mapping[str, Any]) -> VerificationResult:
        capability = self.catalog.require_active_capability(capability_key)
        account = self.accounts.get_account(user_id)
        if account is None:
            raise AccountNotFound(user_id)

        promoted = account.is_promoted_for(capability)
        resolution: Optional[Resolution] = None
        if not promoted:
            resolution = self.resolver.resolve_for(account, capability)

        verification_id = f"ver_{uuid4().hex}"
        try:
            outcome = self.client.invoke(
                capability.endpoint,
                capability.calling_convention,
                payload,
                reference_id=verification_id,
            )
        except ExternalInvocationFailure as exc:
            failed = InvocationOutcome(
                verification_id=verification_id,
                succeeded=False,
                request_payload=dict(payload),
                upstream_status=exc.payload.get("upstream_status"),
                error_message=exc.message,
            )
            try:
                self.recorder.record_failure(account, capability, failed)
            except Exception:
                logger.exception(
                    "Failed to write failure audit entry",
                    extra={"verification_id": verification_id, "capability_key": capability_key},
                )
            raise

        if resolution is None:
            record = self.recorder.record_uncounted(account, capability, outcome)
            return VerificationResult(
                verification_id=outcome.verification_id,
                capability_key=capability.capability_key,
                data=outcome.data or {},
                promoted=True,
                ledger_count=record.count,
            )

        record = self.recorder.record(account, resolution, capability, outcome)
        return VerificationResult(
            verification_id=outcome.verification_id,
            capability_key=capability.capability_key,
            data=outcome.data or {},
            entitlement_id=resolution.entitlement_id,
            remaining_usage=max(resolution.entitlement.remaining_usage - 1, 0),
            ledger_count=record.count,
        )


__all__ = ["VerificationService"]
