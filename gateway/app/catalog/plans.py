"""Static pricing for the standard category plans."""
from __future__ import annotations

from typing import Dict

from .models import BillingCycle, PlanPricing

# Prices are stored in paise. Yearly limits are twelve times the monthly limit.
STANDARD_PLAN_PRICING: Dict[str, Dict[BillingCycle, PlanPricing]] = {
    "Personal": {
        BillingCycle.MONTHLY: PlanPricing(price=499900, usage_limit=25),
        BillingCycle.YEARLY: PlanPricing(price=3849900, usage_limit=300),
    },
    "Professional": {
        BillingCycle.MONTHLY: PlanPricing(price=1899900, usage_limit=100),
        BillingCycle.YEARLY: PlanPricing(price=14629900, usage_limit=1200),
    },
    "Enterprise": {
        BillingCycle.MONTHLY: PlanPricing(price=8999900, usage_limit=500),
        BillingCycle.YEARLY: PlanPricing(price=69299900, usage_limit=6000),
    },
}


def get_standard_pricing(category: str, cycle: BillingCycle) -> PlanPricing:
    """Return the standard plan pricing, raising ``KeyError`` if unsupported."""

    try:
        return STANDARD_PLAN_PRICING[category][cycle]
    except KeyError as exc:
        raise KeyError(f"No standard pricing for {category!r} ({cycle.value})") from exc
