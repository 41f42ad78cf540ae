"""Tests for pydantic-settings-backed shared configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from packages.synap_shared.config import load_settings, resolve_component_settings
from packages.synap_shared.config.loader import parse_env_value
from resources.substrates.postgres.config import PostgresSettings
from services.action.dispatcher.component import SERVICE_COMPONENT_ID as DISPATCHER_ID
from services.action.dispatcher.config import DispatcherSettings
from services.action.webhook_broker.config import (
    WebhookBrokerSettings,
    resolve_webhook_broker_settings,
)


def test_load_settings_uses_synap_precedence_cascade(tmp_path: Path) -> None:
    """CLI params override env, env overrides YAML, YAML overrides defaults."""
    config_file = tmp_path / "synap.yaml"
    config_file.write_text(
        "\n".join(
            [
                "logging:",
                "  level: WARNING",
                "storage:",
                "  backend: postgres",
                "components:",
                "  substrate:",
                "    postgres:",
                "      pool_size: 7",
                "  service:",
                "    dispatcher:",
                "      max_attempts: 3",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(
        cli_params={"logging": {"level": "DEBUG"}},
        environ={
            "SYNAP_LOGGING__LEVEL": "ERROR",
            "SYNAP_COMPONENTS__SUBSTRATE__POSTGRES__POOL_SIZE": "9",
            "SYNAP_COMPONENTS__SERVICE__WEBHOOK_BROKER__RETRY_SCHEDULE_SECONDS": "[0, 2]",
            "UNRELATED_SETTING": "ignored",
        },
        config_path=config_file,
    )

    postgres = resolve_component_settings(
        settings=settings,
        component_id="substrate_postgres",
        model=PostgresSettings,
    )
    dispatcher = resolve_component_settings(
        settings=settings,
        component_id=str(DISPATCHER_ID),
        model=DispatcherSettings,
    )
    broker = resolve_webhook_broker_settings(settings)

    assert settings.logging.level == "DEBUG"
    assert settings.storage.backend == "postgres"
    assert postgres.pool_size == 9
    assert dispatcher.max_attempts == 3
    assert broker.retry_schedule_seconds == (0.0, 2.0)
    assert broker.max_attempts == 2


def test_load_settings_uses_model_defaults_when_sources_missing(tmp_path: Path) -> None:
    settings = load_settings(config_path=tmp_path / "synap.yaml", environ={})
    postgres = resolve_component_settings(
        settings=settings,
        component_id="substrate_postgres",
        model=PostgresSettings,
    )

    assert settings.logging.service == "synap-pipeline"
    assert settings.logging.level == "INFO"
    assert settings.storage.backend == "memory"
    assert postgres.pool_size == 5
    assert resolve_webhook_broker_settings(settings) == WebhookBrokerSettings()


def test_load_settings_rejects_non_mapping_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "synap.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="top-level mapping"):
        load_settings(config_path=config_file, environ={})


def test_flat_component_keys_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="components.service.dispatcher"):
        load_settings(
            cli_params={"components": {"service_dispatcher": {"max_attempts": 2}}},
            config_path=tmp_path / "synap.yaml",
            environ={},
        )


def test_component_settings_reject_unknown_keys(tmp_path: Path) -> None:
    settings = load_settings(
        cli_params={"components": {"service": {"dispatcher": {"bogus": 1}}}},
        config_path=tmp_path / "synap.yaml",
        environ={},
    )

    with pytest.raises(ValueError):
        resolve_component_settings(
            settings=settings,
            component_id=str(DISPATCHER_ID),
            model=DispatcherSettings,
        )


def test_config_path_can_come_from_environment(tmp_path: Path) -> None:
    config_file = tmp_path / "elsewhere.yaml"
    config_file.write_text("storage:\n  backend: postgres\n", encoding="utf-8")

    settings = load_settings(environ={"SYNAP_CONFIG": str(config_file)})

    assert settings.storage.backend == "postgres"


def test_explicit_config_path_beats_environment_path(tmp_path: Path) -> None:
    env_file = tmp_path / "env.yaml"
    env_file.write_text("logging:\n  level: ERROR\n", encoding="utf-8")

    settings = load_settings(
        environ={"SYNAP_CONFIG": str(env_file)},
        config_path=tmp_path / "missing.yaml",
    )

    assert settings.logging.level == "INFO"


def test_env_values_are_typed() -> None:
    assert parse_env_value("true") is True
    assert parse_env_value("None") is None
    assert parse_env_value("8") == 8
    assert parse_env_value("0.5") == 0.5
    assert parse_env_value('{"a": 1}') == {"a": 1}
    assert parse_env_value("[broken") == "[broken"
    assert parse_env_value("https://x") == "https://x"
