"""Synchronous outbound HTTP client used for webhook delivery."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from .errors import HttpRequestError, HttpStatusError

DEFAULT_USER_AGENT = "synap-pipeline/0.1"
ERROR_BODY_LIMIT = 2048


def _retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in (408, 429)


class HttpClient:
    """Wrap ``httpx.Client`` so callers only ever see typed HTTP errors.

    Status failures carry at most ``error_body_limit`` characters of the
    response body, which keeps delivery error records bounded.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        timeout_seconds: float = 10.0,
        headers: Mapping[str, str] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        error_body_limit: int = ERROR_BODY_LIMIT,
        transport: httpx.BaseTransport | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._error_body_limit = error_body_limit
        self._owns_client = client is None
        if client is not None:
            self._client = client
            return
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"User-Agent": user_agent, **dict(headers or {})},
            follow_redirects=False,
            transport=transport,
        )

    def close(self) -> None:
        """Close the wrapped client if this wrapper created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def request(
        self,
        method: str,
        url: str,
        *,
        raise_for_status: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; 4xx/5xx raise ``HttpStatusError`` unless disabled."""
        try:
            response = self._client.request(method=method, url=url, **kwargs)
        except httpx.RequestError as exc:
            raise self._request_error(exc, method=method.upper(), url=url) from exc
        if raise_for_status and response.is_error:
            raise self._status_error(response)
        return response

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def _request_error(
        self, exc: httpx.RequestError, *, method: str, url: str
    ) -> HttpRequestError:
        try:
            request = exc.request
        except RuntimeError:
            request = None
        if request is not None:
            method, url = request.method, str(request.url)
        return HttpRequestError(
            message=f"{type(exc).__name__} during {method} {url}",
            method=method,
            url=url,
            retryable=True,
            cause=exc,
        )

    def _status_error(self, response: httpx.Response) -> HttpStatusError:
        request = response.request
        try:
            body = response.text[: self._error_body_limit]
        except UnicodeDecodeError:
            body = ""
        return HttpStatusError(
            message=f"HTTP {response.status_code} for {request.method} {request.url}",
            method=request.method,
            url=str(request.url),
            retryable=_retryable_status(response.status_code),
            status_code=response.status_code,
            response_body=body,
            response_headers=dict(response.headers.items()),
        )
