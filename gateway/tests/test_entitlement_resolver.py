from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, InMemoryAccountRepository, make_entitlement
from gateway.app.entitlements import Coverage, EntitlementResolver, InvocationOutcome, UsageRecorder, UserAccount
from gateway.app.errors import CapabilityNotFound, NoValidEntitlement


def _account_with(accounts: InMemoryAccountRepository, *entitlements, promoted=()) -> UserAccount:
    return accounts.add_account(
        UserAccount(user_id="user-1", entitlements=tuple(entitlements), promoted_capabilities=frozenset(promoted))
    )


@pytest.mark.parametrize(
    "coverage",
    [
        Coverage.for_category("Identity"),
        Coverage.for_subcategory("PAN"),
    ],
)
def test_category_and_subcategory_coverage(resolver: EntitlementResolver, accounts, coverage: Coverage) -> None:
    account = _account_with(accounts, make_entitlement(coverage))

    resolution = resolver.resolve(account, "pan_father_name_lookup")

    assert resolution.index == 0
    assert resolution.entitlement.coverage == coverage


def test_bundle_coverage_uses_explicit_plan_membership(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(accounts, make_entitlement(Coverage.for_bundle("Starter Bundle")))

    resolution = resolver.resolve(account, "bank_account_verification")

    assert resolution.entitlement.coverage.name == "Starter Bundle"

    with pytest.raises(NoValidEntitlement):
        resolver.resolve(account, "pan_father_name_lookup")


def test_bundle_named_like_a_category_does_not_cover_the_category(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(accounts, make_entitlement(Coverage.for_bundle("Identity")))

    with pytest.raises(NoValidEntitlement):
        resolver.resolve(account, "pan_father_name_lookup")


def test_subcategory_coverage_does_not_match_sibling_subcategory(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(accounts, make_entitlement(Coverage.for_subcategory("Aadhaar")))

    with pytest.raises(NoValidEntitlement):
        resolver.resolve(account, "pan_father_name_lookup")


def test_unknown_or_inactive_capability_is_not_found(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(accounts, make_entitlement(Coverage.for_category("Identity")))

    with pytest.raises(CapabilityNotFound) as missing:
        resolver.resolve(account, "does_not_exist")
    with pytest.raises(CapabilityNotFound):
        resolver.resolve(account, "legacy_lookup")

    assert missing.value.status_code == 404
    assert missing.value.code == "capability_not_found"


def test_entitlement_expiring_exactly_now_is_expired(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(accounts, make_entitlement(Coverage.for_category("Identity"), expires_at=NOW))

    with pytest.raises(NoValidEntitlement):
        resolver.resolve(account, "pan_father_name_lookup")


@pytest.mark.parametrize(
    "expires_at, valid",
    [
        (NOW + timedelta(microseconds=1), True),
        (NOW - timedelta(microseconds=1), False),
    ],
)
def test_expiry_boundary_is_exclusive(resolver: EntitlementResolver, accounts, expires_at, valid: bool) -> None:
    account = _account_with(accounts, make_entitlement(Coverage.for_category("Identity"), expires_at=expires_at))

    if valid:
        assert resolver.resolve(account, "pan_father_name_lookup").index == 0
    else:
        with pytest.raises(NoValidEntitlement):
            resolver.resolve(account, "pan_father_name_lookup")


def test_last_remaining_use_resolves_then_exhausts(
    resolver: EntitlementResolver, recorder: UsageRecorder, accounts, catalog_repository
) -> None:
    account = _account_with(
        accounts,
        make_entitlement(Coverage.for_category("Identity"), usage_limit=5, usage_count=4, entitlement_id="ent_last"),
    )
    capability = catalog_repository.get_capability("pan_father_name_lookup")

    resolution = resolver.resolve_for(account, capability)
    assert resolution.entitlement_id == "ent_last"

    recorder.record(
        account,
        resolution,
        capability,
        InvocationOutcome(verification_id="ver_last", succeeded=True, request_payload={}, data={}),
    )

    charged = accounts.get_account("user-1")
    assert charged.entitlements[0].usage_count == 5
    with pytest.raises(NoValidEntitlement):
        resolver.resolve(charged, "pan_father_name_lookup")


def test_entitlement_at_usage_limit_is_invalid(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(
        accounts,
        make_entitlement(Coverage.for_category("Identity"), usage_limit=5, usage_count=5),
    )

    with pytest.raises(NoValidEntitlement):
        resolver.resolve(account, "pan_father_name_lookup")


def test_first_valid_entitlement_in_list_order_wins(resolver: EntitlementResolver, accounts) -> None:
    dead = make_entitlement(Coverage.for_category("Identity"), usage_limit=1, usage_count=1)
    subcategory = make_entitlement(Coverage.for_subcategory("PAN"), entitlement_id="ent_pan")
    category = make_entitlement(Coverage.for_category("Identity"), entitlement_id="ent_identity")
    account = _account_with(accounts, dead, subcategory, category)

    resolution = resolver.resolve(account, "pan_father_name_lookup")

    assert resolution.entitlement_id == "ent_pan"
    assert resolution.index == 1


def test_successful_resolution_never_prunes(resolver: EntitlementResolver, accounts) -> None:
    expired = make_entitlement(Coverage.for_category("Identity"), expires_at=NOW - timedelta(days=1))
    valid = make_entitlement(Coverage.for_category("Identity"))
    account = _account_with(accounts, expired, valid)

    resolver.resolve(account, "pan_father_name_lookup")

    assert accounts.remove_calls == []
    assert len(accounts.get_account("user-1").entitlements) == 2


def test_failed_resolution_prunes_dead_covering_entitlements_in_one_write(resolver: EntitlementResolver, accounts) -> None:
    expired = make_entitlement(
        Coverage.for_category("Identity"), expires_at=NOW - timedelta(days=1), entitlement_id="ent_expired"
    )
    exhausted = make_entitlement(
        Coverage.for_subcategory("PAN"), usage_limit=3, usage_count=3, entitlement_id="ent_exhausted"
    )
    unrelated_dead = make_entitlement(
        Coverage.for_category("Financial"), expires_at=NOW - timedelta(days=1), entitlement_id="ent_financial"
    )
    account = _account_with(accounts, expired, unrelated_dead, exhausted)

    with pytest.raises(NoValidEntitlement) as exc:
        resolver.resolve(account, "pan_father_name_lookup")

    assert accounts.remove_calls == [["ent_expired", "ent_exhausted"]]
    remaining = accounts.get_account("user-1").entitlements
    assert [item.entitlement_id for item in remaining] == ["ent_financial"]
    assert exc.value.status_code == 403
    assert exc.value.code == "subscription_required"
    assert exc.value.payload["pruned_entitlements"] == 2


def test_failed_resolution_without_dead_entitlements_skips_the_write(resolver: EntitlementResolver, accounts) -> None:
    account = _account_with(accounts)

    with pytest.raises(NoValidEntitlement) as exc:
        resolver.resolve(account, "pan_father_name_lookup")

    assert accounts.remove_calls == []
    assert exc.value.payload["pruned_entitlements"] == 0
