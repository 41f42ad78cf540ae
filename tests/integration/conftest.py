"""Shared fixtures for integration-oriented test modules."""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import Engine

from packages.synap_shared.config import load_settings
from resources.substrates.postgres import create_postgres_engine, ping, resolve_postgres_settings
from tests.integration.helpers import WebhookEndpoint, real_provider_tests_enabled


@pytest.fixture
def webhook_endpoint() -> WebhookEndpoint:
    return WebhookEndpoint()


@pytest.fixture(scope="session")
def postgres_engine() -> Iterator[Engine]:
    """Return a Postgres engine for real-provider tests or skip if unavailable."""
    if not real_provider_tests_enabled():
        pytest.skip("real-provider integration tests disabled")
    postgres = resolve_postgres_settings(load_settings())
    engine = create_postgres_engine(postgres)
    if not ping(engine, timeout_seconds=postgres.health_timeout_seconds):
        engine.dispose()
        pytest.skip("postgres unavailable for integration tests")
    yield engine
    engine.dispose()
