"""Unit tests for the shared HTTP client wrapper."""

from __future__ import annotations

import httpx
import pytest

from packages.synap_shared.http import HttpClient, HttpRequestError, HttpStatusError
from packages.synap_shared.http.client import DEFAULT_USER_AGENT


def _client(handler) -> HttpClient:
    return HttpClient(
        base_url="https://example.test",
        transport=httpx.MockTransport(handler),
    )


def test_http_client_post_sends_body_and_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202, request=request)

    with _client(handler) as client:
        response = client.post(
            "/hooks", content=b'{"a":1}', headers={"X-Signature": "sha256=abc"}
        )

    assert response.status_code == 202
    [request] = seen
    assert request.method == "POST"
    assert request.content == b'{"a":1}'
    assert request.headers["X-Signature"] == "sha256=abc"


def test_http_client_maps_status_failure_to_typed_error() -> None:
    """HttpClient should raise HttpStatusError on 4xx/5xx status codes."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable", request=request)

    client = _client(handler)
    try:
        with pytest.raises(HttpStatusError) as exc_info:
            client.post("/hooks")
    finally:
        client.close()

    error = exc_info.value
    assert error.method == "POST"
    assert error.status_code == 503
    assert error.retryable is True
    assert error.response_body == "unavailable"
    assert "HTTP 503" in str(error)


def test_http_client_marks_client_errors_not_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, request=request)

    with _client(handler) as client:
        with pytest.raises(HttpStatusError) as exc_info:
            client.post("/missing")

    assert exc_info.value.retryable is False


def test_http_client_can_skip_status_mapping() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, request=request)

    with _client(handler) as client:
        response = client.request("POST", "/hooks", raise_for_status=False)

    assert response.status_code == 500


def test_http_client_maps_transport_failure_to_typed_error() -> None:
    """HttpClient should raise HttpRequestError on transport failures."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection failed", request=request)

    client = _client(handler)
    try:
        with pytest.raises(HttpRequestError) as exc_info:
            client.post("/hooks")
    finally:
        client.close()

    error = exc_info.value
    assert error.method == "POST"
    assert error.url == "https://example.test/hooks"
    assert error.retryable is True
    assert isinstance(error.cause, httpx.ConnectError)


def test_http_client_does_not_close_injected_client() -> None:
    inner = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    client = HttpClient(client=inner)

    client.close()

    assert not inner.is_closed
    inner.close()


def test_http_client_sends_default_user_agent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, request=request)

    with _client(handler) as client:
        client.post("/hooks")

    assert seen[0].headers["User-Agent"] == DEFAULT_USER_AGENT


def test_http_client_truncates_error_body_and_retries_timeouts() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(408, text="x" * 100, request=request)

    client = HttpClient(
        base_url="https://example.test",
        error_body_limit=10,
        transport=httpx.MockTransport(handler),
    )
    with client:
        with pytest.raises(HttpStatusError) as exc_info:
            client.post("/hooks")

    assert exc_info.value.response_body == "x" * 10
    assert exc_info.value.retryable is True
