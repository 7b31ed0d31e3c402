"""Entitlement resolution, usage accounting and lifecycle management."""

from .lifecycle import EntitlementLifecycleManager
from .models import (
    Coverage,
    CoverageKind,
    Entitlement,
    InvocationAuditEvent,
    InvocationOutcome,
    InvocationStatus,
    UsageRecord,
    UserAccount,
)
from .periods import advance, cycle_duration
from .recorder import InvocationAuditLogger, UsageRecorder
from .resolver import AccountRepository, EntitlementResolver, Resolution

__all__ = [
    "AccountRepository",
    "Coverage",
    "CoverageKind",
    "Entitlement",
    "EntitlementLifecycleManager",
    "EntitlementResolver",
    "InvocationAuditEvent",
    "InvocationAuditLogger",
    "InvocationOutcome",
    "InvocationStatus",
    "Resolution",
    "UsageRecord",
    "UsageRecorder",
    "UserAccount",
    "advance",
    "cycle_duration",
]
