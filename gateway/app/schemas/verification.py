"""API schemas for verification endpoints."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..verification import VerificationResult


class VerificationRequest(BaseModel):
    service_key: str = Field(alias="serviceKey", min_length=1)
    payload: Dict[str, Any]

    model_config = ConfigDict(populate_by_name=True)


class VerificationResponse(BaseModel):
    success: bool = True
    verification_id: str = Field(alias="verificationId")
    service_key: str = Field(alias="serviceKey")
    data: Dict[str, Any] = Field(default_factory=dict)
    promoted: bool = False
    remaining_usage: Optional[int] = Field(alias="remainingUsage", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: VerificationResult) -> "VerificationResponse":
        return cls(
            verification_id=result.verification_id,
            service_key=result.capability_key,
            data=result.data,
            promoted=result.promoted,
            remaining_usage=result.remaining_usage,
        )
