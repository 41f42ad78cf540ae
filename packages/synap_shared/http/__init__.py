"""Shared outbound HTTP client for Synap services."""

from .client import HttpClient
from .errors import HttpClientError, HttpError, HttpRequestError, HttpStatusError

__all__ = [
    "HttpClient",
    "HttpClientError",
    "HttpError",
    "HttpRequestError",
    "HttpStatusError",
]
