"""Tests for Postgres substrate settings and engine wiring."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

import resources.substrates.postgres.engine as engine_module
from packages.synap_shared.config import load_settings
from resources.substrates.postgres.config import PostgresSettings, resolve_postgres_settings
from resources.substrates.postgres.engine import create_postgres_engine


def test_pool_pre_ping_defaults_to_true() -> None:
    assert PostgresSettings().pool_pre_ping is True


def test_resolve_reads_component_overrides(tmp_path: Path) -> None:
    settings = load_settings(
        cli_params={
            "components": {
                "substrate": {
                    "postgres": {
                        "url": " postgresql+psycopg://u:p@db:5432/synap ",
                        "pool_pre_ping": "false",
                    }
                }
            }
        },
        config_path=tmp_path / "missing.yaml",
        environ={},
    )

    resolved = resolve_postgres_settings(settings)

    assert resolved.url == "postgresql+psycopg://u:p@db:5432/synap"
    assert resolved.pool_pre_ping is False


def test_blank_url_is_rejected() -> None:
    with pytest.raises(ValidationError):
        PostgresSettings(url="   ")


def test_engine_passes_pool_and_connect_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_create_engine(url: str, **kwargs: object) -> object:
        captured["url"] = url
        captured.update(kwargs)
        return object()

    monkeypatch.setattr(engine_module, "create_engine", fake_create_engine)

    create_postgres_engine(
        PostgresSettings(pool_pre_ping=False, connect_timeout_seconds=2.5, sslmode="require")
    )

    assert captured["pool_pre_ping"] is False
    assert captured["connect_args"] == {"connect_timeout": 2, "sslmode": "require"}
