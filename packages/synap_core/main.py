"""Process entrypoint for the Synap pipeline, implemented with Typer."""

from __future__ import annotations

import json
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from time import sleep
from typing import Any, Optional

import typer

from packages.synap_core.migrations import run_startup_migrations
from packages.synap_core.pipeline import Backend, build_pipeline
from packages.synap_shared.config import SynapSettings, load_settings
from packages.synap_shared.envelope import EnvelopeKind, new_meta
from packages.synap_shared.logging import (
    configure_logging,
    configure_public_api_telemetry,
    get_logger,
)
from resources.substrates.postgres import (
    create_postgres_engine,
    ping,
    resolve_postgres_settings,
)
from services.action.proposal_manager import ProposalDecision

_LOGGER = get_logger(__name__)
_RUNNING = True

SUCCESS_EXIT_CODE = 0
DOMAIN_ERROR_EXIT_CODE = 3
DEPENDENCY_ERROR_EXIT_CODE = 4


@dataclass(frozen=True)
class CliConfig:
    """Global options shared by every command."""

    settings: SynapSettings
    backend: Backend
    principal: str
    as_json: bool


app = typer.Typer(no_args_is_help=True, help="Synap command pipeline")
proposals_app = typer.Typer(help="Human review queue commands")
app.add_typer(proposals_app, name="proposals")


def _handle_shutdown(_signum: int, _frame: object) -> None:
    """Mark the process for graceful shutdown on termination signals."""
    global _RUNNING
    _RUNNING = False


def _emit(data: Any, as_json: bool) -> None:
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    if as_json:
        typer.echo(json.dumps(data, sort_keys=True, separators=(",", ":")))
        return
    if isinstance(data, dict):
        for key, value in data.items():
            typer.echo(f"{key}: {value}")
        return
    typer.echo(str(data))


def _fail(message: str, *, as_json: bool, code: int) -> None:
    if as_json:
        typer.echo(json.dumps({"error": message}), err=True)
    else:
        typer.echo(f"error: {message}", err=True)
    raise typer.Exit(code=code)


def _require_config(ctx: typer.Context) -> CliConfig:
    cfg = ctx.obj
    if not isinstance(cfg, CliConfig):
        raise typer.BadParameter("CLI context is not initialized")
    return cfg


def _meta(cfg: CliConfig):
    return new_meta(kind=EnvelopeKind.COMMAND, source="cli", principal=cfg.principal)


def _wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)
    while _RUNNING:
        sleep(1.0)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="YAML config file (default ~/.config/synap/synap.yaml)"
    ),
    backend: Optional[str] = typer.Option(
        None, help="Storage backend override: memory or postgres"
    ),
    log_level: Optional[str] = typer.Option(None, help="Logging level override"),
    principal: str = typer.Option("operator", help="Envelope principal"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Load settings, configure logging, and store the CLI context."""
    cli_params: dict[str, Any] = {}
    if backend is not None:
        if backend not in ("memory", "postgres"):
            raise typer.BadParameter("backend must be 'memory' or 'postgres'")
        cli_params["storage"] = {"backend": backend}
    if log_level is not None:
        cli_params["logging"] = {"level": log_level.upper()}
    settings = load_settings(cli_params=cli_params, config_path=config)
    configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.json_output,
        service=settings.logging.service,
        environment=settings.logging.environment,
        stream=sys.stderr,
        logger_levels=settings.logging.logger_levels,
    )
    configure_public_api_telemetry(settings.observability.public_api_otel)
    ctx.obj = CliConfig(
        settings=settings,
        backend=settings.storage.backend,
        principal=principal,
        as_json=as_json,
    )


@app.command("run")
def run_command(ctx: typer.Context) -> None:
    """Run dispatch lanes, the outbox sweeper and the webhook poller until signalled."""
    cfg = _require_config(ctx)
    pipeline = build_pipeline(cfg.settings, backend=cfg.backend)
    pipeline.start()
    try:
        _wait_for_shutdown()
    finally:
        pipeline.stop()
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


@app.command("sweep")
def sweep_command(
    ctx: typer.Context,
    timeout: float = typer.Option(30.0, help="Seconds to wait for dispatch to drain"),
) -> None:
    """Resend every pending dispatch signal once and wait for handlers."""
    cfg = _require_config(ctx)
    pipeline = build_pipeline(cfg.settings, backend=cfg.backend)
    pipeline.start(background_loops=False)
    try:
        result = pipeline.sweeper.sweep_once()
        drained = pipeline.drain(timeout=timeout)
    finally:
        pipeline.stop()
    payload = result.model_dump(mode="json")
    payload["drained"] = drained
    _emit(payload, cfg.as_json)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


@app.command("bootstrap")
def bootstrap_command(ctx: typer.Context) -> None:
    """Create every service schema, then upgrade each service to its migration head."""
    cfg = _require_config(ctx)
    engine = create_postgres_engine(resolve_postgres_settings(cfg.settings))
    try:
        result = run_startup_migrations(engine=engine)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.error("Startup migrations failed", exc_info=exc)
        _fail(str(exc), as_json=cfg.as_json, code=DEPENDENCY_ERROR_EXIT_CODE)
    finally:
        engine.dispose()
    _emit(
        {
            "schemas": list(result.provisioned_schemas),
            "migrations": list(result.executed_alembic_configs),
        },
        cfg.as_json,
    )
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Report event store readiness and, for Postgres, database reachability."""
    cfg = _require_config(ctx)
    report: dict[str, Any] = {"backend": cfg.backend}
    if cfg.backend == "postgres":
        postgres = resolve_postgres_settings(cfg.settings)
        engine = create_postgres_engine(postgres)
        try:
            report["postgres_ready"] = ping(
                engine, timeout_seconds=postgres.health_timeout_seconds
            )
        finally:
            engine.dispose()
        if not report["postgres_ready"]:
            _emit(report, cfg.as_json)
            raise typer.Exit(code=DEPENDENCY_ERROR_EXIT_CODE)

    pipeline = build_pipeline(cfg.settings, backend=cfg.backend)
    try:
        status = pipeline.publisher.health(meta=_meta(cfg))
    finally:
        pipeline.stop()
    if not status.ok or status.value is None:
        _fail(
            "; ".join(error.message for error in status.errors),
            as_json=cfg.as_json,
            code=DEPENDENCY_ERROR_EXIT_CODE,
        )
    report.update(status.value.model_dump(mode="json"))
    _emit(report, cfg.as_json)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


@proposals_app.command("list")
def proposals_list_command(
    ctx: typer.Context,
    workspace: Optional[str] = typer.Option(None, help="Only this workspace"),
) -> None:
    """List pending proposals."""
    cfg = _require_config(ctx)
    pipeline = build_pipeline(cfg.settings, backend=cfg.backend)
    try:
        result = pipeline.proposals.list_pending(meta=_meta(cfg), workspace_id=workspace)
    finally:
        pipeline.stop()
    if not result.ok or result.value is None:
        _fail(
            "; ".join(error.message for error in result.errors),
            as_json=cfg.as_json,
            code=DOMAIN_ERROR_EXIT_CODE,
        )
    proposals = [proposal.model_dump(mode="json") for proposal in result.value]
    if cfg.as_json:
        _emit(proposals, True)
    elif not proposals:
        typer.echo("no pending proposals")
    else:
        for proposal in proposals:
            typer.echo(
                f"{proposal['id']}  {proposal['workspace_id']}  "
                f"{proposal['request']['event_type']}  {proposal['reason']}"
            )
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


@proposals_app.command("resolve")
def proposals_resolve_command(
    ctx: typer.Context,
    proposal_id: str = typer.Argument(..., help="Proposal id"),
    decision: ProposalDecision = typer.Option(..., help="approve or reject"),
    reason: Optional[str] = typer.Option(None, help="Reviewer note"),
) -> None:
    """Approve or reject one pending proposal as the current principal."""
    cfg = _require_config(ctx)
    pipeline = build_pipeline(cfg.settings, backend=cfg.backend)
    try:
        result = pipeline.proposals.resolve(
            meta=_meta(cfg),
            proposal_id=proposal_id,
            decision=decision,
            resolved_by=cfg.principal,
            reason=reason,
        )
    finally:
        pipeline.stop()
    if not result.ok or result.value is None:
        _fail(
            "; ".join(error.message for error in result.errors),
            as_json=cfg.as_json,
            code=DOMAIN_ERROR_EXIT_CODE,
        )
    _emit(
        {"id": result.value.id, "status": result.value.status.value},
        cfg.as_json,
    )
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


if __name__ == "__main__":
    app()
