from __future__ import annotations

import http.client
import io
import json
import socket
from typing import Any, Dict, List
from urllib import error as urllib_error
from urllib import parse as urllib_parse

import pytest

from gateway.app.catalog.models import CallingConvention
from gateway.app.errors import ExternalInvocationFailure
from gateway.app.verification import client as client_module
from gateway.app.verification.client import HTTPVerificationClient


class _FakeResponse:
    def __init__(self, body: Dict[str, Any], status: int = 200) -> None:
        self.status = status
        self._body = json.dumps(body).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None


@pytest.fixture
def http_client() -> HTTPVerificationClient:
    return HTTPVerificationClient(
        base_url="https://api.example.test/",
        api_key="key-123",
        timeout_seconds=12.5,
        consent_text="I agree.",
    )


def test_json_call_sends_key_consent_and_timeout(monkeypatch, http_client: HTTPVerificationClient) -> None:
    calls: List[Dict[str, Any]] = []

    def fake_urlopen(request, timeout=None):
        calls.append({"request": request, "timeout": timeout})
        return _FakeResponse({"status": 200, "data": {"father_name": "RAMESH"}})

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    outcome = http_client.invoke(
        "/pan-api/fetch-father-name",
        CallingConvention.JSON,
        {"pan_number": "ABCDE1234F", "consent_text": "whatever"},
        reference_id="ver_abc",
    )

    request = calls[0]["request"]
    body = json.loads(request.data.decode("utf-8"))
    assert request.full_url == "https://api.example.test/pan-api/fetch-father-name"
    assert request.get_method() == "POST"
    assert request.get_header("X-api-key") == "key-123"
    assert request.get_header("X-auth-type") == "API-Key"
    assert request.get_header("X-reference-id") == "ver_abc"
    assert request.get_header("Content-type") == "application/json"
    assert body == {"pan_number": "ABCDE1234F", "consent_text": "I agree.", "consent": "Y"}
    assert calls[0]["timeout"] == 12.5
    assert outcome.succeeded is True
    assert outcome.verification_id == "ver_abc"
    assert outcome.data == {"father_name": "RAMESH"}
    assert outcome.request_payload == {"pan_number": "ABCDE1234F", "consent_text": "whatever"}


def test_form_call_encodes_body(monkeypatch, http_client: HTTPVerificationClient) -> None:
    calls: List[Any] = []

    def fake_urlopen(request, timeout=None):
        calls.append(request)
        return _FakeResponse({"status": 200, "data": {"ok": True}})

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    http_client.invoke("/aadhaar-api/ocr", CallingConvention.FORM, {"document": "front"})

    request = calls[0]
    assert request.get_header("Content-type") == "application/x-www-form-urlencoded"
    assert urllib_parse.parse_qs(request.data.decode("utf-8")) == {"document": ["front"], "consent": ["Y"]}


def test_provider_status_other_than_200_is_a_failure(monkeypatch, http_client: HTTPVerificationClient) -> None:
    def fake_urlopen(request, timeout=None):
        return _FakeResponse({"status": 400, "error": {"message": "Bad request."}})

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    with pytest.raises(ExternalInvocationFailure) as exc:
        http_client.invoke("/pan-api/fetch-father-name", CallingConvention.JSON, {"pan_number": "X"})

    assert exc.value.message == "Invalid request. Please check the input data and try again."
    assert exc.value.payload["upstream_status"] == 400


def test_field_level_error_message_is_surfaced(monkeypatch, http_client: HTTPVerificationClient) -> None:
    def fake_urlopen(request, timeout=None):
        return _FakeResponse(
            {"status": 422, "error": {"metadata": {"fields": [{"message": "PAN format is invalid"}]}}}
        )

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    with pytest.raises(ExternalInvocationFailure) as exc:
        http_client.invoke("/pan-api/fetch-father-name", CallingConvention.JSON, {"pan_number": "X"})

    assert exc.value.message == "PAN format is invalid"


@pytest.mark.parametrize(
    "error",
    [{"metadata": "bad"}, {"metadata": {"fields": "bad"}}, {"metadata": {"fields": ["bad"]}}, "bad"],
)
def test_malformed_error_body_falls_back_to_generic_message(
    monkeypatch, http_client: HTTPVerificationClient, error
) -> None:
    def fake_urlopen(request, timeout=None):
        return _FakeResponse({"status": 422, "error": error})

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    with pytest.raises(ExternalInvocationFailure) as exc:
        http_client.invoke("/pan-api/fetch-father-name", CallingConvention.JSON, {"pan_number": "X"})

    assert exc.value.message == "Request failed"
    assert exc.value.payload["upstream_status"] == 422


def test_http_error_carries_upstream_status(monkeypatch, http_client: HTTPVerificationClient) -> None:
    def fake_urlopen(request, timeout=None):
        raise urllib_error.HTTPError(
            request.full_url,
            503,
            "Service Unavailable",
            hdrs=None,
            fp=io.BytesIO(b'{"error": {"message": "Provider maintenance"}}'),
        )

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    with pytest.raises(ExternalInvocationFailure) as exc:
        http_client.invoke("/bank-api/verify", CallingConvention.JSON, {})

    assert exc.value.status_code == 502
    assert exc.value.message == "Provider maintenance"
    assert exc.value.payload["upstream_status"] == 503


@pytest.mark.parametrize(
    "failure",
    [
        urllib_error.URLError("connection refused"),
        TimeoutError("timed out"),
        socket.timeout("timed out"),
        ConnectionResetError("reset"),
        http.client.RemoteDisconnected("closed"),
        http.client.IncompleteRead(b"partial"),
    ],
)
def test_transport_errors_become_invocation_failures(monkeypatch, http_client: HTTPVerificationClient, failure) -> None:
    def fake_urlopen(request, timeout=None):
        raise failure

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)

    with pytest.raises(ExternalInvocationFailure) as exc:
        http_client.invoke("/bank-api/verify", CallingConvention.JSON, {})

    assert exc.value.code == "upstream_failed"


def test_missing_api_key_fails_without_network(monkeypatch) -> None:
    def fake_urlopen(request, timeout=None):  # pragma: no cover - must not be reached
        raise AssertionError("network call attempted")

    monkeypatch.setattr(client_module.urllib_request, "urlopen", fake_urlopen)
    client = HTTPVerificationClient(base_url="https://api.example.test", api_key=None)

    with pytest.raises(ExternalInvocationFailure):
        client.invoke("/bank-api/verify", CallingConvention.JSON, {})


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        HTTPVerificationClient(base_url="https://api.example.test", api_key="k", timeout_seconds=0)


def test_connection_dropped_while_reading_body(monkeypatch, http_client: HTTPVerificationClient) -> None:
    class _TruncatedResponse(_FakeResponse):
        def read(self) -> bytes:
            raise http.client.IncompleteRead(b'{"status": 2')

    monkeypatch.setattr(
        client_module.urllib_request, "urlopen", lambda request, timeout=None: _TruncatedResponse({})
    )

    with pytest.raises(ExternalInvocationFailure) as exc:
        http_client.invoke("/bank-api/verify", CallingConvention.JSON, {})

    assert exc.value.status_code == 502
    assert exc.value.message == "Verification provider is unreachable or timed out."
