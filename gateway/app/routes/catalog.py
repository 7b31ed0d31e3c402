"""Public API routes listing verification services and bundle plans."""
from __future__ import annotations

from fastapi import APIRouter

from ..schemas.catalog import BundlePlanListResponse, CapabilityListResponse
from ..services.catalog import get_catalog_service

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("/services", response_model=CapabilityListResponse)
def list_services() -> CapabilityListResponse:
    return CapabilityListResponse(services=list(get_catalog_service().list_capabilities()))


@router.get("/plans", response_model=BundlePlanListResponse)
def list_plans() -> BundlePlanListResponse:
    return BundlePlanListResponse(plans=list(get_catalog_service().list_bundle_plans()))
