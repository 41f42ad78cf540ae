"""Real-Postgres flow through the whole pipeline.

Runs only with ``SYNAP_RUN_INTEGRATION_REAL=1`` and a reachable database.
Subject ids are unique per run so leftover rows never collide.
"""

from __future__ import annotations

from pathlib import Path

import httpx
from sqlalchemy import Engine

from packages.synap_core.migrations import run_startup_migrations
from packages.synap_core.pipeline import build_pipeline, service_metadata
from packages.synap_shared.http import HttpClient
from packages.synap_shared.ids import generate_ulid_str
from services.action.proposal_manager.domain import ProposalDecision
from services.action.webhook_broker.domain import DeliveryStatus
from services.state.event_store.domain import AppendEventRequest, EventSource
from tests.integration.helpers import WebhookEndpoint, isolated_settings, operator_meta


def test_startup_migrations_are_idempotent(postgres_engine: Engine) -> None:
    run_startup_migrations(engine=postgres_engine)
    second = run_startup_migrations(engine=postgres_engine)

    assert set(service_metadata()) <= set(second.provisioned_schemas)
    assert len(second.executed_alembic_configs) == len(service_metadata())


def test_postgres_pipeline_applies_proposal_and_delivers_webhook(
    postgres_engine: Engine, tmp_path: Path, webhook_endpoint: WebhookEndpoint
) -> None:
    run_startup_migrations(engine=postgres_engine)
    settings = isolated_settings(
        tmp_path, dispatcher={"retry_backoff_base_seconds": 0, "retry_backoff_max_seconds": 0}
    )
    pipeline = build_pipeline(
        settings,
        backend="postgres",
        engine=postgres_engine,
        http=HttpClient(transport=httpx.MockTransport(webhook_endpoint)),
    )
    workspace_id = f"ws-{generate_ulid_str()}"
    subject_id = f"entity-{generate_ulid_str()}"
    pipeline.start(background_loops=False)
    try:
        assert pipeline.broker.add_subscription(
            meta=operator_meta(),
            workspace_id=workspace_id,
            url="https://hooks.example.test/synap",
            event_type_patterns=["entities.*"],
            secret="s3cret",
        ).ok
        appended = pipeline.publisher.append(
            meta=operator_meta(),
            request=AppendEventRequest(
                type="entities.create.requested",
                subject_id=subject_id,
                subject_type="entity",
                data={"title": "From agent"},
                metadata={"workspaceId": workspace_id},
                actor_id="agent-1",
                source=EventSource.EXTERNAL_INTELLIGENCE,
            ),
        )
        assert appended.ok
        assert pipeline.drain(timeout=30.0)

        pending = pipeline.proposals.list_pending(
            meta=operator_meta(), workspace_id=workspace_id
        ).value
        assert pending is not None and len(pending) == 1
        assert pipeline.proposals.resolve(
            meta=operator_meta("reviewer-1"),
            proposal_id=pending[0].id,
            decision=ProposalDecision.APPROVE,
            resolved_by="reviewer-1",
        ).ok
        assert pipeline.drain(timeout=30.0)

        history = pipeline.publisher.list_subject_events(
            meta=operator_meta(), subject_id=subject_id
        ).value
        assert history is not None
        assert [event.type for event in history] == [
            "entities.create.requested",
            "entities.create.approved",
            "entities.create.validated",
        ]
        assert pipeline.broker.process_due().succeeded == 1
        attempts = pipeline.broker.list_attempts(
            meta=operator_meta(), event_id=history[-1].id
        ).value
        assert attempts is not None
        assert [attempt.status for attempt in attempts] == [DeliveryStatus.SUCCESS]
    finally:
        pipeline.stop()
