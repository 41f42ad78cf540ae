"""Smoke tests for the integration harness helper layer."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.integration.helpers import isolated_settings, real_provider_tests_enabled


def test_real_provider_flag_defaults_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SYNAP_RUN_INTEGRATION_REAL", raising=False)
    assert real_provider_tests_enabled() is False


def test_real_provider_flag_accepts_truthy_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNAP_RUN_INTEGRATION_REAL", " Yes ")
    assert real_provider_tests_enabled() is True


def test_isolated_settings_default_to_memory_backend(tmp_path: Path) -> None:
    settings = isolated_settings(tmp_path, dispatcher={"lanes_per_subscription": 2})

    assert settings.storage.backend == "memory"
    assert settings.components.service.model_dump()["dispatcher"] == {
        "lanes_per_subscription": 2
    }
