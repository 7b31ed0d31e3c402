"""Grant, renew, extend and revoke entitlements."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..catalog.models import BillingCycle
from ..errors import AccountNotFound, EntitlementNotFound, InvalidExtension
from .models import Coverage, Entitlement, UserAccount
from .periods import Duration, advance
from .resolver import AccountRepository

logger = logging.getLogger(__name__)


@dataclass
class EntitlementLifecycleManager:
    """Creates entitlements and moves their expiry dates."""

    accounts: AccountRepository
    clock: Optional[Callable[[], datetime]] = None

    def _current_time(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return datetime.now(timezone.utc)

    def _require_account(self, user_id: str) -> UserAccount:
        account = self.accounts.get_account(user_id)
        if account is None:
            raise AccountNotFound(user_id)
        return account

    def grant_or_renew(
        self,
        user_id: str,
        coverage: Coverage,
        cycle: BillingCycle,
        usage_limit: int,
        *,
        duration: Optional[Duration] = None,
    ) -> Entitlement:
        """Renew the unexpired entitlement for ``coverage`` or create a new one.

        Renewal extends from the current expiry (not from now) and adds
        ``usage_limit`` on top of the existing limit; the usage count is kept.
        """

        if usage_limit < 0:
            raise ValueError("usage_limit must be >= 0")
        if cycle == BillingCycle.PROMOTIONAL and duration is None:
            raise ValueError("Promotional grants require an explicit duration")

        account = self._require_account(user_id)
        now = self._current_time()

        current = next(
            (
                entitlement
                for entitlement in account.entitlements_for(coverage)
                if not entitlement.is_expired(now)
            ),
            None,
        )
        if current is not None:
            renewed = current.model_copy(
                update={
                    "cycle": cycle,
                    "usage_limit": current.usage_limit + usage_limit,
                    "expires_at": advance(current.expires_at, cycle, duration=duration),
                    "is_promotional": cycle == BillingCycle.PROMOTIONAL,
                }
            )
            stored = self.accounts.save_entitlement(user_id, renewed)
            logger.info(
                "Renewed entitlement %s for user=%s coverage=%s",
                stored.entitlement_id,
                user_id,
                coverage,
                extra={"usage_limit": stored.usage_limit, "expires_at": stored.expires_at.isoformat()},
            )
            return stored

        entitlement = Entitlement(
            coverage=coverage,
            cycle=cycle,
            usage_limit=usage_limit,
            usage_count=0,
            granted_at=now,
            expires_at=advance(now, cycle, duration=duration),
            is_promotional=cycle == BillingCycle.PROMOTIONAL,
        )
        stored = self.accounts.append_entitlement(user_id, entitlement)
        logger.info(
            "Granted entitlement %s for user=%s coverage=%s",
            stored.entitlement_id,
            user_id,
            coverage,
            extra={"usage_limit": stored.usage_limit, "expires_at": stored.expires_at.isoformat()},
        )
        return stored

    def revoke(self, user_id: str, coverage: Coverage) -> int:
        """Remove every entitlement with ``coverage`` and the promoted group of the same name."""

        self._require_account(user_id)
        removed = self.accounts.revoke_coverage(user_id, coverage)
        logger.info("Revoked %s entitlements for user=%s coverage=%s", removed, user_id, coverage)
        return removed

    def extend(self, user_id: str, coverage: Coverage, duration: Duration) -> Entitlement:
        """Push the expiry of the first entitlement with ``coverage`` forward by ``duration``."""

        account = self._require_account(user_id)
        matches = account.entitlements_for(coverage)
        if not matches:
            raise EntitlementNotFound(user_id, str(coverage))

        target = matches[0]
        requested = target.expires_at + duration
        if requested <= target.expires_at:
            raise InvalidExtension(target.expires_at, requested)

        stored = self.accounts.save_entitlement(user_id, target.model_copy(update={"expires_at": requested}))
        logger.info(
            "Extended entitlement %s for user=%s until %s",
            stored.entitlement_id,
            user_id,
            stored.expires_at.isoformat(),
        )
        return stored

    def promote(self, user_id: str, group: str) -> UserAccount:
        group = group.strip()
        if not group:
            raise ValueError("group must not be blank")
        self._require_account(user_id)
        if self.accounts.add_promoted_capability(user_id, group):
            logger.info("Promoted user=%s for group=%s", user_id, group)
        return self._require_account(user_id)

    def demote(self, user_id: str, group: str) -> UserAccount:
        self._require_account(user_id)
        if self.accounts.remove_promoted_capability(user_id, group.strip()):
            logger.info("Demoted user=%s from group=%s", user_id, group)
        return self._require_account(user_id)


__all__ = ["EntitlementLifecycleManager"]
