"""Public API for Synap pipeline composition and startup migrations."""

from packages.synap_core.migrations import (
    MigrationExecutionError,
    MigrationRunResult,
    run_startup_migrations,
)
from packages.synap_core.pipeline import (
    BROKER_SUBSCRIPTION,
    VALIDATOR_SUBSCRIPTION,
    Backend,
    Pipeline,
    build_pipeline,
    service_metadata,
)

__all__ = [
    "BROKER_SUBSCRIPTION",
    "Backend",
    "MigrationExecutionError",
    "MigrationRunResult",
    "Pipeline",
    "VALIDATOR_SUBSCRIPTION",
    "build_pipeline",
    "run_startup_migrations",
    "service_metadata",
]
