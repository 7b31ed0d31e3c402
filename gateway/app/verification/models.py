"""Result types returned by the verification orchestration."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class VerificationResult(BaseModel):
    """Outcome of a paid or promoted verification call."""

    verification_id: str
    capability_key: str
    data: Dict[str, Any] = Field(default_factory=dict)
    promoted: bool = False
    entitlement_id: Optional[str] = None
    remaining_usage: Optional[int] = Field(
        default=None,
        description="Units left on the charged entitlement; None for promoted access",
    )
    ledger_count: int = 0

    model_config = ConfigDict(frozen=True)


__all__ = ["VerificationResult"]
