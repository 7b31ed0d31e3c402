"""Capability catalog: verification services, bundle plans and standard pricing."""

from .models import BillingCycle, BundlePlan, CallingConvention, Capability, PlanPricing
from .plans import STANDARD_PLAN_PRICING, get_standard_pricing
from .service import CatalogRepository, CatalogService

__all__ = [
    "BillingCycle",
    "BundlePlan",
    "CallingConvention",
    "Capability",
    "CatalogRepository",
    "CatalogService",
    "PlanPricing",
    "STANDARD_PLAN_PRICING",
    "get_standard_pricing",
]
