"""Orchestration of metered calls to the upstream verification provider."""

from .client import HTTPVerificationClient, VerificationClient
from .models import VerificationResult
from .service import VerificationService

__all__ = [
    "HTTPVerificationClient",
    "VerificationClient",
    "VerificationResult",
    "VerificationService",
]
