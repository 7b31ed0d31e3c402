"""HTTP client for the upstream identity-verification provider."""
from __future__ import annotations

import http.client
import json
import logging
from typing import Any, Mapping, Optional, Protocol
from urllib import error as urllib_error, parse as urllib_parse, request as urllib_request
from uuid import uuid4

from ..catalog.models import CallingConvention
from ..entitlements.models import InvocationOutcome
from ..errors import ExternalInvocationFailure

logger = logging.getLogger("gateway.verification")

DEFAULT_CONSENT_TEXT = "I provide consent to fetch information."
_SNIPPET_LENGTH = 300


class VerificationClient(Protocol):
    """Performs a single guarded call to the upstream provider."""

    def invoke(
        self,
        endpoint: str,
        calling_convention: CallingConvention,
        payload: Mapping[str, Any],
        *,
        reference_id: Optional[str] = None,
    ) -> InvocationOutcome:
        ...


def _snippet(body: bytes) -> str:
    return body[:_SNIPPET_LENGTH].decode("utf-8", errors="replace")


def _provider_error_message(result: Mapping[str, Any]) -> str:
    error = result.get("error") or {}
    if not isinstance(error, Mapping):
        return "Request failed"
    message = error.get("message")
    if not message:
        metadata = error.get("metadata")
        fields = metadata.get("fields") if isinstance(metadata, Mapping) else None
        if isinstance(fields, list) and fields and isinstance(fields[0], Mapping):
            message = fields[0].get("message")
    message = message or "Request failed"
    if message == "Bad request.":
        return "Invalid request. Please check the input data and try again."
    return message


class HTTPVerificationClient:
    """Client posting JSON or form bodies to the provider with an API key header."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str],
        timeout_seconds: float = 30.0,
        consent_text: str = DEFAULT_CONSENT_TEXT,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._consent_text = consent_text

    def _build_request(
        self,
        endpoint: str,
        calling_convention: CallingConvention,
        payload: Mapping[str, Any],
        reference_id: str,
    ) -> urllib_request.Request:
        body = dict(payload)
        if "consent_text" in body:
            body["consent_text"] = self._consent_text
        body["consent"] = "Y"

        headers = {
            "Accept": "application/json",
            "X-API-Key": self._api_key or "",
            "X-Auth-Type": "API-Key",
            "X-Reference-ID": reference_id,
        }
        if calling_convention == CallingConvention.FORM:
            data = urllib_parse.urlencode(body, doseq=True).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        else:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        return urllib_request.Request(url, data=data, headers=headers, method="POST")

    def invoke(
        self,
        endpoint: str,
        calling_convention: CallingConvention,
        payload: Mapping[str, Any],
        *,
        reference_id: Optional[str] = None,
    ) -> InvocationOutcome:
        if not self._api_key:
            raise ExternalInvocationFailure("Verification API key is not configured.")

        verification_id = reference_id or f"ver_{uuid4().hex}"
        request = self._build_request(endpoint, calling_convention, payload, verification_id)
        log_context = {"endpoint": endpoint, "verification_id": verification_id}

        try:
            with urllib_request.urlopen(request, timeout=self._timeout) as response:
                status_code = response.status
                raw = response.read()
        except urllib_error.HTTPError as exc:
            raw = exc.read() or b""
            try:
                message = _provider_error_message(json.loads(raw.decode("utf-8")))
            except (json.JSONDecodeError, UnicodeDecodeError, AttributeError):
                message = f"Verification provider returned HTTP {exc.code}"
            logger.warning(
                "Verification provider rejected request",
                extra={**log_context, "upstream_status": exc.code},
            )
            raise ExternalInvocationFailure(
                message, upstream_status=exc.code, response_snippet=_snippet(raw)
            ) from exc
        except (OSError, http.client.HTTPException) as exc:
            logger.warning(
                "Verification provider unreachable",
                extra={**log_context, "error": str(exc)},
            )
            raise ExternalInvocationFailure("Verification provider is unreachable or timed out.") from exc

        try:
            result = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ExternalInvocationFailure(
                "Verification provider returned an unreadable response.",
                upstream_status=status_code,
                response_snippet=_snippet(raw),
            ) from exc

        if not isinstance(result, Mapping) or result.get("status") != 200:
            provider_status = result.get("status") if isinstance(result, Mapping) else None
            logger.warning(
                "Verification provider reported failure",
                extra={**log_context, "upstream_status": provider_status},
            )
            message = _provider_error_message(result) if isinstance(result, Mapping) else "Request failed"
            raise ExternalInvocationFailure(
                message,
                upstream_status=provider_status if isinstance(provider_status, int) else status_code,
                response_snippet=_snippet(raw),
            )

        data = result.get("data")
        if data is None:
            data = {}
        return InvocationOutcome(
            verification_id=verification_id,
            succeeded=True,
            request_payload=dict(payload),
            data=data if isinstance(data, dict) else {"value": data},
            upstream_status=status_code,
        )


__all__ = ["DEFAULT_CONSENT_TEXT", "HTTPVerificationClient", "VerificationClient"]
