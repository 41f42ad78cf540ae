"""Shared helpers for integration tests."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import httpx

from packages.synap_shared.config import SynapSettings, load_settings
from packages.synap_shared.envelope import EnvelopeKind, EnvelopeMeta, new_meta


def real_provider_tests_enabled() -> bool:
    """Return True when real-provider integration tests are explicitly enabled."""
    raw = os.getenv("SYNAP_RUN_INTEGRATION_REAL", "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def isolated_settings(tmp_path: Path, **components: dict[str, Any]) -> SynapSettings:
    """Build settings from defaults plus ``components.service`` overrides only."""
    return load_settings(
        cli_params={"components": {"service": components}},
        environ={},
        config_path=tmp_path / "missing.yaml",
    )


class WebhookEndpoint:
    """Mock receiver answering every request with a settable status code."""

    def __init__(self) -> None:
        self.status_code = 200
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


def operator_meta(principal: str = "operator") -> EnvelopeMeta:
    return new_meta(kind=EnvelopeKind.COMMAND, source="test", principal=principal)
