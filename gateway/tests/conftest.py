from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from gateway.app.catalog import BillingCycle, BundlePlan, CatalogService, Capability, PlanPricing
from gateway.app.catalog.models import CallingConvention
from gateway.app.catalog.service import CatalogRepository
from gateway.app.entitlements import (
    AccountRepository,
    Coverage,
    Entitlement,
    EntitlementLifecycleManager,
    EntitlementResolver,
    InvocationAuditEvent,
    InvocationAuditLogger,
    InvocationOutcome,
    UsageRecord,
    UsageRecorder,
    UserAccount,
)
from gateway.app.errors import ExternalInvocationFailure
from gateway.app.payments import (
    Coupon,
    HMACSignatureVerifier,
    PaymentOrder,
    PaymentOrderStatus,
    PaymentRepository,
    PaymentService,
    PurchaseStatistic,
)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class InMemoryCatalogRepository(CatalogRepository):
    def __init__(self) -> None:
        self.capabilities: Dict[str, Capability] = {}
        self.plans: Dict[str, BundlePlan] = {}

    def get_capability(self, capability_key: str) -> Optional[Capability]:
        return self.capabilities.get(capability_key)

    def find_active_capability(self, capability_key: str) -> Optional[Capability]:
        capability = self.capabilities.get(capability_key)
        return capability if capability and capability.is_active else None

    def list_active_capabilities(self) -> Sequence[Capability]:
        return [capability for capability in self.capabilities.values() if capability.is_active]

    def list_all_capabilities(self) -> Sequence[Capability]:
        return list(self.capabilities.values())

    def find_plans_including(self, capability_key: str) -> Sequence[str]:
        return sorted(name for name, plan in self.plans.items() if plan.includes(capability_key))

    def get_bundle_plan(self, name: str) -> Optional[BundlePlan]:
        return self.plans.get(name)

    def list_bundle_plans(self) -> Sequence[BundlePlan]:
        return list(self.plans.values())

    def save_capability(self, capability: Capability) -> Capability:
        self.capabilities[capability.capability_key] = capability
        return capability

    def save_bundle_plans(self, plans: Sequence[BundlePlan]) -> Sequence[BundlePlan]:
        for plan in plans:
            self.plans[plan.name] = plan
        return list(plans)

    def increment_invocations(self, capability_key: str) -> None:
        capability = self.capabilities[capability_key]
        self.capabilities[capability_key] = capability.model_copy(
            update={"global_invocation_count": capability.global_invocation_count + 1}
        )


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, catalog: InMemoryCatalogRepository) -> None:
        self.catalog = catalog
        self.accounts: Dict[str, UserAccount] = {}
        self.remove_calls: List[List[str]] = []
        self.fail_next_usage = False

    def add_account(self, account: UserAccount) -> UserAccount:
        self.accounts[account.user_id] = account
        return account

    def _replace(self, user_id: str, **update: Any) -> UserAccount:
        updated = self.accounts[user_id].model_copy(update=update)
        self.accounts[user_id] = updated
        return updated

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        return self.accounts.get(user_id)

    def remove_entitlements(self, user_id: str, entitlement_ids: Sequence[str]) -> int:
        self.remove_calls.append(list(entitlement_ids))
        account = self.accounts[user_id]
        kept = tuple(item for item in account.entitlements if item.entitlement_id not in set(entitlement_ids))
        self._replace(user_id, entitlements=kept)
        return len(account.entitlements) - len(kept)

    def append_entitlement(self, user_id: str, entitlement: Entitlement) -> Entitlement:
        account = self.accounts[user_id]
        self._replace(user_id, entitlements=account.entitlements + (entitlement,))
        return entitlement

    def save_entitlement(self, user_id: str, entitlement: Entitlement) -> Entitlement:
        account = self.accounts[user_id]
        index = account.entitlement_index(entitlement.entitlement_id)
        if index is None:
            raise LookupError(entitlement.entitlement_id)
        entitlements = list(account.entitlements)
        entitlements[index] = entitlement
        self._replace(user_id, entitlements=tuple(entitlements))
        return entitlement

    def revoke_coverage(self, user_id: str, coverage: Coverage) -> int:
        account = self.accounts[user_id]
        kept = tuple(item for item in account.entitlements if item.coverage != coverage)
        self._replace(
            user_id,
            entitlements=kept,
            promoted_capabilities=account.promoted_capabilities - {coverage.name},
        )
        return len(account.entitlements) - len(kept)

    def add_promoted_capability(self, user_id: str, group: str) -> bool:
        account = self.accounts[user_id]
        if group in account.promoted_capabilities:
            return False
        self._replace(user_id, promoted_capabilities=account.promoted_capabilities | {group})
        return True

    def remove_promoted_capability(self, user_id: str, group: str) -> bool:
        account = self.accounts[user_id]
        if group not in account.promoted_capabilities:
            return False
        self._replace(user_id, promoted_capabilities=account.promoted_capabilities - {group})
        return True

    def record_usage(
        self,
        user_id: str,
        *,
        entitlement_id: Optional[str],
        capability_key: str,
        at: datetime,
    ) -> Optional[UsageRecord]:
        if self.fail_next_usage:
            self.fail_next_usage = False
            raise RuntimeError("database unavailable")

        account = self.accounts[user_id]
        entitlements = list(account.entitlements)
        if entitlement_id is not None:
            index = account.entitlement_index(entitlement_id)
            if index is None or entitlements[index].is_exhausted:
                return None
            current = entitlements[index]
            entitlements[index] = current.model_copy(update={"usage_count": current.usage_count + 1})

        ledger = dict(account.usage_ledger)
        record = ledger.get(capability_key, UsageRecord()).with_invocation(at)
        ledger[capability_key] = record
        self._replace(user_id, entitlements=tuple(entitlements), usage_ledger=ledger)
        self.catalog.increment_invocations(capability_key)
        return record


class InMemoryAuditLogger(InvocationAuditLogger):
    def __init__(self) -> None:
        self.events: List[InvocationAuditEvent] = []

    def log(self, event: InvocationAuditEvent) -> None:
        self.events.append(event)


class FakeVerificationClient:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.failure: Optional[ExternalInvocationFailure] = None
        self.data: Dict[str, Any] = {"name": "ASHA VERMA", "valid": True}

    def invoke(
        self,
        endpoint: str,
        calling_convention: CallingConvention,
        payload: Mapping[str, Any],
        *,
        reference_id: Optional[str] = None,
    ) -> InvocationOutcome:
        self.calls.append(
            {
                "endpoint": endpoint,
                "calling_convention": calling_convention,
                "payload": dict(payload),
                "reference_id": reference_id,
            }
        )
        if self.failure is not None:
            raise self.failure
        return InvocationOutcome(
            verification_id=reference_id or "ver_test",
            succeeded=True,
            request_payload=dict(payload),
            data=dict(self.data),
            upstream_status=200,
        )


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self) -> None:
        self.orders: Dict[str, PaymentOrder] = {}
        self.coupons: Dict[str, Coupon] = {}

    def save_order(self, order: PaymentOrder) -> PaymentOrder:
        self.orders[order.order_id] = order
        return order

    def get_order(self, order_id: str) -> Optional[PaymentOrder]:
        return self.orders.get(order_id)

    def list_orders_for_user(self, user_id: str, *, limit: int = 50) -> Sequence[PaymentOrder]:
        orders = [order for order in self.orders.values() if order.user_id == user_id]
        return sorted(orders, key=lambda order: order.created_at, reverse=True)[:limit]

    def mark_order_completed(self, order_id: str, *, payment_id: str, at: datetime) -> Optional[PaymentOrder]:
        order = self.orders.get(order_id)
        if order is None or order.status != PaymentOrderStatus.PENDING:
            return None
        updated = order.model_copy(
            update={"status": PaymentOrderStatus.COMPLETED, "payment_id": payment_id, "updated_at": at}
        )
        self.orders[order_id] = updated
        return updated

    def mark_order_failed(
        self, order_id: str, *, reason: str, at: datetime, error: Optional[str] = None
    ) -> Optional[PaymentOrder]:
        order = self.orders.get(order_id)
        if order is None:
            return None
        metadata = dict(order.metadata)
        if error:
            metadata["error"] = error
        updated = order.model_copy(
            update={
                "status": PaymentOrderStatus.FAILED,
                "failure_reason": reason,
                "metadata": metadata,
                "updated_at": at,
            }
        )
        self.orders[order_id] = updated
        return updated

    def get_coupon(self, code: str) -> Optional[Coupon]:
        return self.coupons.get(code)

    def save_coupon(self, coupon: Coupon) -> Coupon:
        self.coupons[coupon.code] = coupon
        return coupon

    def summarize_completed_orders(self) -> Sequence[PurchaseStatistic]:
        totals: Dict[Coverage, List[int]] = {}
        for order in self.orders.values():
            if order.status == PaymentOrderStatus.COMPLETED:
                count, revenue = totals.get(order.coverage, [0, 0])
                totals[order.coverage] = [count + 1, revenue + order.amount]
        stats = [
            PurchaseStatistic(coverage=coverage, purchase_count=count, total_revenue=revenue)
            for coverage, (count, revenue) in totals.items()
        ]
        return sorted(stats, key=lambda item: (-item.total_revenue, item.coverage.name))

    def list_coupons(self) -> Sequence[Coupon]:
        return [self.coupons[code] for code in sorted(self.coupons)]

    def set_coupon_active(self, code: str, is_active: bool) -> Optional[Coupon]:
        coupon = self.coupons.get(code)
        if coupon is None:
            return None
        self.coupons[code] = coupon.model_copy(update={"is_active": is_active})
        return self.coupons[code]

    def increment_coupon_usage(self, code: str) -> bool:
        coupon = self.coupons.get(code)
        if coupon is None:
            return False
        self.coupons[code] = coupon.model_copy(update={"times_used": coupon.times_used + 1})
        return True


class FakePaymentGateway:
    def __init__(self) -> None:
        self.orders: List[Dict[str, Any]] = []

    def create_order(self, *, amount: int, currency: str, receipt: str, notes: Dict[str, str]) -> Dict[str, Any]:
        payload = {
            "id": f"order_test{len(self.orders) + 1}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        self.orders.append(payload)
        return payload


SIGNER = HMACSignatureVerifier("test-secret")
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_entitlement(
    coverage: Coverage,
    *,
    usage_limit: int = 10,
    usage_count: int = 0,
    expires_at: Optional[datetime] = None,
    cycle: BillingCycle = BillingCycle.MONTHLY,
    entitlement_id: Optional[str] = None,
) -> Entitlement:
    values: Dict[str, Any] = {
        "coverage": coverage,
        "cycle": cycle,
        "usage_limit": usage_limit,
        "usage_count": usage_count,
        "granted_at": NOW - timedelta(days=10),
        "expires_at": expires_at or NOW + timedelta(days=20),
    }
    if entitlement_id is not None:
        values["entitlement_id"] = entitlement_id
    return Entitlement(**values)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def catalog_repository() -> InMemoryCatalogRepository:
    repository = InMemoryCatalogRepository()
    repository.save_capability(
        Capability(
            capability_key="pan_father_name_lookup",
            name="PAN Father Name Lookup",
            category="Identity",
            subcategory="PAN",
            endpoint="/pan-api/fetch-father-name",
        )
    )
    repository.save_capability(
        Capability(
            capability_key="bank_account_verification",
            name="Bank Account Verification",
            category="Financial",
            endpoint="/bank-api/verify",
        )
    )
    repository.save_capability(
        Capability(
            capability_key="aadhaar_ocr_v2",
            name="Aadhaar OCR",
            category="Identity",
            subcategory="Aadhaar",
            endpoint="/aadhaar-api/ocr",
            calling_convention=CallingConvention.FORM,
        )
    )
    repository.save_capability(
        Capability(
            capability_key="legacy_lookup",
            name="Legacy Lookup",
            category="Identity",
            endpoint="/legacy",
            is_active=False,
        )
    )
    repository.save_bundle_plans(
        [
            BundlePlan(
                name="Starter Bundle",
                monthly=PlanPricing(price=99900, usage_limit=10),
                yearly=PlanPricing(price=999900, usage_limit=120),
                included_capability_keys=("bank_account_verification",),
            )
        ]
    )
    return repository


@pytest.fixture
def catalog_service(catalog_repository: InMemoryCatalogRepository) -> CatalogService:
    return CatalogService(repository=catalog_repository)


@pytest.fixture
def accounts(catalog_repository: InMemoryCatalogRepository) -> InMemoryAccountRepository:
    repository = InMemoryAccountRepository(catalog_repository)
    repository.add_account(UserAccount(user_id="user-1"))
    return repository


@pytest.fixture
def audit_logger() -> InMemoryAuditLogger:
    return InMemoryAuditLogger()


@pytest.fixture
def resolver(catalog_service: CatalogService, accounts: InMemoryAccountRepository, clock: FixedClock) -> EntitlementResolver:
    return EntitlementResolver(catalog=catalog_service, accounts=accounts, clock=clock)


@pytest.fixture
def recorder(accounts: InMemoryAccountRepository, audit_logger: InMemoryAuditLogger, clock: FixedClock) -> UsageRecorder:
    return UsageRecorder(accounts=accounts, audit_logger=audit_logger, clock=clock)


@pytest.fixture
def lifecycle(accounts: InMemoryAccountRepository, clock: FixedClock) -> EntitlementLifecycleManager:
    return EntitlementLifecycleManager(accounts=accounts, clock=clock)


@pytest.fixture
def verification_client() -> FakeVerificationClient:
    return FakeVerificationClient()


@pytest.fixture
def payment_repository() -> InMemoryPaymentRepository:
    return InMemoryPaymentRepository()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def payments(
    payment_repository: InMemoryPaymentRepository,
    catalog_repository: InMemoryCatalogRepository,
    payment_gateway: FakePaymentGateway,
    lifecycle: EntitlementLifecycleManager,
    clock: FixedClock,
) -> PaymentService:
    return PaymentService(
        repository=payment_repository,
        catalog=catalog_repository,
        gateway=payment_gateway,
        signature_verifier=SIGNER,
        lifecycle=lifecycle,
        key_id="rzp_test_key",
        clock=clock,
    )
