"""Domain models for user accounts, entitlements and the usage ledger."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import AbstractSet, Any, Dict, FrozenSet, Mapping, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..catalog.models import BillingCycle, Capability


class CoverageKind(str, Enum):
    """Namespaces an entitlement can cover a capability through."""

    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    BUNDLE = "bundle"


class Coverage(BaseModel):
    """Tagged coverage name; a bundle called "Personal" never matches the category "Personal"."""

    kind: CoverageKind
    name: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("coverage name must not be blank")
        return stripped

    @classmethod
    def for_category(cls, name: str) -> "Coverage":
        return cls(kind=CoverageKind.CATEGORY, name=name)

    @classmethod
    def for_subcategory(cls, name: str) -> "Coverage":
        return cls(kind=CoverageKind.SUBCATEGORY, name=name)

    @classmethod
    def for_bundle(cls, name: str) -> "Coverage":
        return cls(kind=CoverageKind.BUNDLE, name=name)

    def covers(self, capability: Capability, bundle_names: AbstractSet[str]) -> bool:
        """Return whether this coverage pays for ``capability``.

        ``bundle_names`` holds the bundle plans that explicitly list the capability.
        """

        if self.kind == CoverageKind.CATEGORY:
            return self.name == capability.category
        if self.kind == CoverageKind.SUBCATEGORY:
            return capability.subcategory is not None and self.name == capability.subcategory
        return self.name in bundle_names

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


def _new_entitlement_id() -> str:
    return f"ent_{uuid4().hex}"


class Entitlement(BaseModel):
    """A time-bounded, count-bounded right to invoke covered capabilities."""

    entitlement_id: str = Field(default_factory=_new_entitlement_id)
    coverage: Coverage
    cycle: BillingCycle
    usage_limit: int = Field(ge=0)
    usage_count: int = Field(default=0, ge=0)
    granted_at: datetime
    expires_at: datetime
    is_promotional: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @property
    def is_exhausted(self) -> bool:
        return self.usage_count >= self.usage_limit

    def is_valid(self, now: datetime) -> bool:
        return not self.is_expired(now) and not self.is_exhausted

    @property
    def remaining_usage(self) -> int:
        return max(self.usage_limit - self.usage_count, 0)


class UsageRecord(BaseModel):
    """Audit-only ledger entry for a single capability."""

    count: int = Field(default=0, ge=0)
    timestamps: Tuple[datetime, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    def with_invocation(self, at: datetime) -> "UsageRecord":
        timestamps = self.timestamps + (at,)
        return UsageRecord(count=len(timestamps), timestamps=timestamps)


class UserAccount(BaseModel):
    """A user with promoted capability groups, entitlements and a usage ledger."""

    user_id: str
    promoted_capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    entitlements: Tuple[Entitlement, ...] = Field(default_factory=tuple)
    usage_ledger: Dict[str, UsageRecord] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def is_promoted_for(self, capability: Capability) -> bool:
        if capability.category in self.promoted_capabilities:
            return True
        return capability.subcategory is not None and capability.subcategory in self.promoted_capabilities

    def entitlement_index(self, entitlement_id: str) -> Optional[int]:
        for index, entitlement in enumerate(self.entitlements):
            if entitlement.entitlement_id == entitlement_id:
                return index
        return None

    def entitlements_for(self, coverage: Coverage) -> Tuple[Entitlement, ...]:
        return tuple(entitlement for entitlement in self.entitlements if entitlement.coverage == coverage)


class InvocationOutcome(BaseModel):
    """Result of a guarded call to the upstream verification provider."""

    verification_id: str = Field(default_factory=lambda: f"ver_{uuid4().hex}")
    succeeded: bool
    request_payload: Dict[str, Any] = Field(default_factory=dict)
    data: Optional[Dict[str, Any]] = None
    upstream_status: Optional[int] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class InvocationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class InvocationAuditEvent(BaseModel):
    """Append-only audit entry describing one verification attempt."""

    verification_id: str
    user_id: str
    capability_key: str
    status: InvocationStatus
    input_payload: Mapping[str, Any] = Field(default_factory=dict)
    result_data: Optional[Mapping[str, Any]] = None
    error_message: Optional[str] = None
    entitlement_id: Optional[str] = None
    promoted: bool = False
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


__all__ = [
    "Coverage",
    "CoverageKind",
    "Entitlement",
    "InvocationAuditEvent",
    "InvocationOutcome",
    "InvocationStatus",
    "UsageRecord",
    "UserAccount",
]
