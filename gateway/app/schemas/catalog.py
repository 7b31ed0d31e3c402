"""API schemas for the public catalog."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict

from ..catalog.models import BundlePlan, Capability


class CapabilityListResponse(BaseModel):
    services: List[Capability]

    model_config = ConfigDict(populate_by_name=True)


class BundlePlanListResponse(BaseModel):
    plans: List[BundlePlan]

    model_config = ConfigDict(populate_by_name=True)
