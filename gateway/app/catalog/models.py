"""Domain models for the capability catalog and bundle plans."""
from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BillingCycle(str, Enum):
    """Billing frequencies an entitlement can be granted for."""

    MONTHLY = "monthly"
    YEARLY = "yearly"
    PROMOTIONAL = "promotional"


class CallingConvention(str, Enum):
    """Body encoding expected by an upstream verification endpoint."""

    JSON = "json"
    FORM = "form"


class Capability(BaseModel):
    """An externally invokable verification operation."""

    capability_key: str = Field(min_length=1)
    name: str
    category: str = Field(min_length=1)
    subcategory: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    global_invocation_count: int = Field(default=0, ge=0)
    endpoint: str = Field(description="Path of the upstream endpoint, relative to the provider base URL")
    calling_convention: CallingConvention = CallingConvention.JSON

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("subcategory")
    @classmethod
    def _blank_subcategory_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class PlanPricing(BaseModel):
    """Price (minor currency units) and usage allowance for one billing cycle."""

    price: int = Field(ge=0)
    usage_limit: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class BundlePlan(BaseModel):
    """Named package explicitly listing the capabilities it covers."""

    name: str = Field(min_length=1)
    monthly: PlanPricing
    yearly: PlanPricing
    included_capability_keys: Tuple[str, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def includes(self, capability_key: str) -> bool:
        return capability_key in self.included_capability_keys

    def pricing_for(self, cycle: BillingCycle) -> PlanPricing:
        if cycle == BillingCycle.MONTHLY:
            return self.monthly
        if cycle == BillingCycle.YEARLY:
            return self.yearly
        raise ValueError(f"Bundle plan '{self.name}' has no pricing for {cycle.value} grants")
