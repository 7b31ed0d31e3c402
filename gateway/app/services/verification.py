"""Application wiring for the verification service."""
from __future__ import annotations

from functools import lru_cache

from ...config import get_gateway_config
from ..verification import HTTPVerificationClient, VerificationService
from .catalog import get_catalog_service
from .entitlements import get_account_repository, get_entitlement_resolver, get_usage_recorder


@lru_cache(maxsize=1)
def get_verification_service() -> VerificationService:
    config = get_gateway_config()
    client = HTTPVerificationClient(
        base_url=config.verification_api_base_url,
        api_key=config.verification_api_key,
        timeout_seconds=config.verification_timeout_seconds,
        consent_text=config.verification_consent_text,
    )
    return VerificationService(
        catalog=get_catalog_service(),
        accounts=get_account_repository(),
        resolver=get_entitlement_resolver(),
        recorder=get_usage_recorder(),
        client=client,
    )


__all__ = ["get_verification_service"]
