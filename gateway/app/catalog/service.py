"""Catalog lookups and admin maintenance for capabilities and bundle plans."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from ..errors import CapabilityNotFound
from .models import BundlePlan, Capability

logger = logging.getLogger(__name__)


class CatalogRepository(Protocol):
    """Persistence operations required by catalog consumers."""

    def get_capability(self, capability_key: str) -> Optional[Capability]:
        ...

    def find_active_capability(self, capability_key: str) -> Optional[Capability]:
        ...

    def list_active_capabilities(self) -> Sequence[Capability]:
        ...

    def list_all_capabilities(self) -> Sequence[Capability]:
        ...

    def find_plans_including(self, capability_key: str) -> Sequence[str]:
        ...

    def get_bundle_plan(self, name: str) -> Optional[BundlePlan]:
        ...

    def list_bundle_plans(self) -> Sequence[BundlePlan]:
        ...

    def save_capability(self, capability: Capability) -> Capability:
        ...

    def save_bundle_plans(self, plans: Sequence[BundlePlan]) -> Sequence[BundlePlan]:
        ...


@dataclass
class CatalogService:
    """Read-mostly access to the capability catalog."""

    repository: CatalogRepository

    def require_active_capability(self, capability_key: str) -> Capability:
        capability = self.repository.find_active_capability(capability_key)
        if capability is None or not capability.is_active:
            raise CapabilityNotFound(capability_key)
        return capability

    def explicit_coverage_names(self, capability: Capability) -> frozenset[str]:
        """Return the names of every bundle plan explicitly listing ``capability``."""

        return frozenset(self.repository.find_plans_including(capability.capability_key))

    def list_capabilities(self) -> Sequence[Capability]:
        return self.repository.list_active_capabilities()

    def list_bundle_plans(self) -> Sequence[BundlePlan]:
        return self.repository.list_bundle_plans()

    def usage_statistics(self) -> Sequence[Capability]:
        """Every capability, inactive ones included, by lifetime invocations descending."""

        capabilities = self.repository.list_all_capabilities()
        return sorted(capabilities, key=lambda item: (-item.global_invocation_count, item.capability_key))

    def add_capability(self, capability: Capability) -> Capability:
        if self.repository.get_capability(capability.capability_key) is not None:
            raise ValueError(f"A service with key '{capability.capability_key}' already exists.")
        stored = self.repository.save_capability(capability)
        logger.info(
            "Capability registered",
            extra={"capability_key": stored.capability_key, "category": stored.category},
        )
        return stored

    def add_bundle_plans(self, plans: Sequence[BundlePlan]) -> Sequence[BundlePlan]:
        """Create bundle plans after validating names and included capability keys."""

        if not plans:
            raise ValueError("At least one pricing plan is required.")

        names = [plan.name for plan in plans]
        if len(set(names)) != len(names):
            raise ValueError("The provided plans contain duplicate plan names.")

        existing = sorted(name for name in names if self.repository.get_bundle_plan(name) is not None)
        if existing:
            raise ValueError(f"The following pricing plans already exist: {', '.join(existing)}")

        invalid_keys = sorted(
            {
                key
                for plan in plans
                for key in plan.included_capability_keys
                if self.repository.get_capability(key) is None
            }
        )
        if invalid_keys:
            raise ValueError(
                f"The following service keys are invalid or do not exist: {', '.join(invalid_keys)}"
            )

        stored = self.repository.save_bundle_plans(plans)
        logger.info("Bundle plans created", extra={"plan_names": names})
        return stored


__all__ = ["CatalogRepository", "CatalogService"]
