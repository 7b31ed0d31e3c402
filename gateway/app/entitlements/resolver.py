"""Select the entitlement that pays for a capability invocation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from ..catalog.models import Capability
from ..catalog.service import CatalogService
from ..errors import NoValidEntitlement
from .models import Coverage, Entitlement, UsageRecord, UserAccount

logger = logging.getLogger(__name__)


class AccountRepository(Protocol):
    """Persistence operations for user accounts and the entitlements they own."""

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        ...

    def remove_entitlements(self, user_id: str, entitlement_ids: Sequence[str]) -> int:
        """Delete the given entitlements in a single write, returning how many were removed."""

    def append_entitlement(self, user_id: str, entitlement: Entitlement) -> Entitlement:
        ...

    def save_entitlement(self, user_id: str, entitlement: Entitlement) -> Entitlement:
        ...

    def revoke_coverage(self, user_id: str, coverage: Coverage) -> int:
        """Remove every entitlement with ``coverage`` and the promoted group of the same name."""

    def add_promoted_capability(self, user_id: str, group: str) -> bool:
        ...

    def remove_promoted_capability(self, user_id: str, group: str) -> bool:
        ...

    def record_usage(
        self,
        user_id: str,
        *,
        entitlement_id: Optional[str],
        capability_key: str,
        at: datetime,
    ) -> Optional[UsageRecord]:
        """Atomically charge one invocation.

        When ``entitlement_id`` is given its ``usage_count`` is incremented only
        while it is below ``usage_limit``; ``None`` is returned, and nothing is
        written, when that condition no longer holds.
        """


@dataclass(frozen=True)
class Resolution:
    """The entitlement chosen to pay for an invocation and its position in the account."""

    entitlement: Entitlement
    index: int

    @property
    def entitlement_id(self) -> str:
        return self.entitlement.entitlement_id


@dataclass
class EntitlementResolver:
    """Finds a valid covering entitlement and prunes dead ones when none is left."""

    catalog: CatalogService
    accounts: AccountRepository
    clock: Optional[Callable[[], datetime]] = None

    def _current_time(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return datetime.now(timezone.utc)

    def resolve(self, account: UserAccount, capability_key: str) -> Resolution:
        capability = self.catalog.require_active_capability(capability_key)
        return self.resolve_for(account, capability)

    def resolve_for(self, account: UserAccount, capability: Capability) -> Resolution:
        """Return the first valid covering entitlement in account order.

        When no covering entitlement is valid, every expired or exhausted one is
        removed in a single write before :class:`NoValidEntitlement` is raised.
        """

        bundle_names = self.catalog.explicit_coverage_names(capability)
        now = self._current_time()
        dead: List[Entitlement] = []

        for index, entitlement in enumerate(account.entitlements):
            if not entitlement.coverage.covers(capability, bundle_names):
                continue
            if entitlement.is_valid(now):
                return Resolution(entitlement=entitlement, index=index)
            dead.append(entitlement)

        pruned = 0
        if dead:
            pruned = self.accounts.remove_entitlements(
                account.user_id, [entitlement.entitlement_id for entitlement in dead]
            )
            logger.info(
                "Pruned %s dead entitlements for user=%s capability=%s",
                pruned,
                account.user_id,
                capability.capability_key,
                extra={"entitlement_ids": [entitlement.entitlement_id for entitlement in dead]},
            )
        raise NoValidEntitlement(capability.capability_key, pruned=pruned)


__all__ = ["AccountRepository", "EntitlementResolver", "Resolution"]
