"""API schemas describing a user's entitlements and usage."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..catalog.models import BillingCycle
from ..entitlements.models import CoverageKind, Entitlement, UserAccount


class EntitlementView(BaseModel):
    entitlement_id: str = Field(alias="entitlementId")
    coverage_kind: CoverageKind = Field(alias="coverageKind")
    coverage_name: str = Field(alias="coverageName")
    cycle: BillingCycle
    usage_limit: int = Field(alias="usageLimit")
    usage_count: int = Field(alias="usageCount")
    remaining_usage: int = Field(alias="remainingUsage")
    granted_at: datetime = Field(alias="grantedAt")
    expires_at: datetime = Field(alias="expiresAt")
    is_promotional: bool = Field(alias="isPromotional")
    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_entitlement(cls, entitlement: Entitlement, now: datetime) -> "EntitlementView":
        return cls(
            entitlement_id=entitlement.entitlement_id,
            coverage_kind=entitlement.coverage.kind,
            coverage_name=entitlement.coverage.name,
            cycle=entitlement.cycle,
            usage_limit=entitlement.usage_limit,
            usage_count=entitlement.usage_count,
            remaining_usage=entitlement.remaining_usage,
            granted_at=entitlement.granted_at,
            expires_at=entitlement.expires_at,
            is_promotional=entitlement.is_promotional,
            is_active=entitlement.is_valid(now),
        )


class UsageLedgerEntry(BaseModel):
    service_key: str = Field(alias="serviceKey")
    count: int
    last_used_at: Optional[datetime] = Field(alias="lastUsedAt", default=None)

    model_config = ConfigDict(populate_by_name=True)


class UsageSummaryResponse(BaseModel):
    user_id: str = Field(alias="userId")
    promoted_capabilities: List[str] = Field(alias="promotedCapabilities", default_factory=list)
    entitlements: List[EntitlementView] = Field(default_factory=list)
    usage: List[UsageLedgerEntry] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_account(cls, account: UserAccount, now: datetime) -> "UsageSummaryResponse":
        return cls(
            user_id=account.user_id,
            promoted_capabilities=sorted(account.promoted_capabilities),
            entitlements=[EntitlementView.from_entitlement(item, now) for item in account.entitlements],
            usage=[
                UsageLedgerEntry(
                    service_key=key,
                    count=record.count,
                    last_used_at=record.timestamps[-1] if record.timestamps else None,
                )
                for key, record in sorted(account.usage_ledger.items())
            ],
        )
