"""Application wiring for entitlement resolution, usage recording and lifecycle management."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..entitlements import (
    EntitlementLifecycleManager,
    EntitlementResolver,
    InvocationAuditEvent,
    InvocationAuditLogger,
    UsageRecorder,
)
from ..entitlements.repository import PostgresAccountRepository, PostgresInvocationAuditLogger
from .catalog import get_catalog_service

logger = logging.getLogger("gateway.audit")


class LoggingInvocationAuditLogger(InvocationAuditLogger):
    """Writes audit entries to the database and mirrors them to the application log."""

    def __init__(self, sink: InvocationAuditLogger) -> None:
        self._sink = sink

    def log(self, event: InvocationAuditEvent) -> None:
        self._sink.log(event)
        logger.info(
            "Verification %s user=%s capability=%s status=%s",
            event.verification_id,
            event.user_id,
            event.capability_key,
            event.status.value,
        )


@lru_cache(maxsize=1)
def get_account_repository() -> PostgresAccountRepository:
    return PostgresAccountRepository()


@lru_cache(maxsize=1)
def get_entitlement_resolver() -> EntitlementResolver:
    return EntitlementResolver(catalog=get_catalog_service(), accounts=get_account_repository())


@lru_cache(maxsize=1)
def get_usage_recorder() -> UsageRecorder:
    audit_logger = LoggingInvocationAuditLogger(PostgresInvocationAuditLogger())
    return UsageRecorder(accounts=get_account_repository(), audit_logger=audit_logger)


@lru_cache(maxsize=1)
def get_lifecycle_manager() -> EntitlementLifecycleManager:
    return EntitlementLifecycleManager(accounts=get_account_repository())


__all__ = [
    "LoggingInvocationAuditLogger",
    "get_account_repository",
    "get_entitlement_resolver",
    "get_lifecycle_manager",
    "get_usage_recorder",
]
