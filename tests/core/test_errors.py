"""Error hierarchy tests - envelopes, headers and provider error classification.

Tests cover:
    - to_response() envelope carries the message under "error"
    - RateLimitedError exposes Retry-After
    - classify_provider_error maps failure text to the four kinds
    - user_message texts per kind (other kind truncated to 200 chars)
"""

import pytest

from vibestudio.core.errors import (
    ProviderError, RateLimitedError, RunConflictError, UnconfiguredError,
    ValidationError, classify_provider_error,
)


def test_envelope_shape():
    body = ValidationError("Prompt is required", "prompt").to_response()
    assert body["error"] == "Prompt is required"
    assert body["code"] == "VALIDATION_ERROR"
    assert body["category"] == "validation"


def test_status_codes():
    assert ValidationError("x", "f").http_status == 400
    assert RunConflictError("p").http_status == 409
    assert RateLimitedError(5).http_status == 429
    assert UnconfiguredError().http_status == 500


def test_retry_after_header():
    assert RateLimitedError(42).response_headers() == {"Retry-After": "42"}
    assert ValidationError("x", "f").response_headers() is None


@pytest.mark.parametrize("text,kind", [
    ("Error code: 429 - too many requests", ProviderError.RATE_LIMITED),
    ("rate_limit_error: slow down", ProviderError.RATE_LIMITED),
    ("Error code: 401 - invalid_api_key", ProviderError.AUTH_FAILED),
    ("connect ECONNREFUSED 127.0.0.1:443", ProviderError.NETWORK),
    ("request ETIMEDOUT", ProviderError.NETWORK),
    ("model overloaded", ProviderError.OTHER),
])
def test_classify_by_text(text, kind):
    assert classify_provider_error(RuntimeError(text)).kind == kind


def test_classify_connection_error_type():
    assert classify_provider_error(ConnectionError("reset")).kind == ProviderError.NETWORK


def test_classify_passes_provider_error_through():
    err = ProviderError("x", ProviderError.AUTH_FAILED)
    assert classify_provider_error(err) is err


def test_user_messages():
    assert "authentication failed" in ProviderError("x", ProviderError.AUTH_FAILED).user_message
    assert "rate limit" in ProviderError("x", ProviderError.RATE_LIMITED).user_message
    assert "connect" in ProviderError("x", ProviderError.NETWORK).user_message
    other = ProviderError("z" * 500, ProviderError.OTHER).user_message
    assert other == "AI service error: " + "z" * 200
