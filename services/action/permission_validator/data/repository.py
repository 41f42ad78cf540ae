"""Workspace policy repository implementations."""

from __future__ import annotations

from threading import Lock

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.action.permission_validator.data.schema import workspace_policies
from services.action.permission_validator.domain import WorkspacePolicy
from services.action.permission_validator.interfaces import WorkspacePolicyRepository


class InMemoryWorkspacePolicyRepository(WorkspacePolicyRepository):
    """Dictionary-backed workspace override store."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._policies: dict[str, WorkspacePolicy] = {}

    def get(self, *, workspace_id: str) -> WorkspacePolicy | None:
        with self._lock:
            return self._policies.get(workspace_id)

    def put(self, *, policy: WorkspacePolicy) -> WorkspacePolicy:
        with self._lock:
            self._policies[policy.workspace_id] = policy
            return policy


class PostgresWorkspacePolicyRepository(WorkspacePolicyRepository):
    """SQL repository over the Permission Validator schema."""

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    def get(self, *, workspace_id: str) -> WorkspacePolicy | None:
        with self._sessions.session() as session:
            row = (
                session.execute(
                    select(workspace_policies).where(
                        workspace_policies.c.workspace_id == workspace_id
                    )
                )
                .mappings()
                .one_or_none()
            )
            if row is None:
                return None
            return WorkspacePolicy(
                workspace_id=row["workspace_id"],
                rules=dict(row["rules"] or {}),
                owner_shortcut_enabled=bool(row["owner_shortcut_enabled"]),
            )

    def put(self, *, policy: WorkspacePolicy) -> WorkspacePolicy:
        rules = policy.model_dump(mode="json")["rules"]
        with self._sessions.session() as session:
            stmt = insert(workspace_policies).values(
                workspace_id=policy.workspace_id,
                rules=rules,
                owner_shortcut_enabled=policy.owner_shortcut_enabled,
            )
            session.execute(
                stmt.on_conflict_do_update(
                    index_elements=["workspace_id"],
                    set_={
                        "rules": rules,
                        "owner_shortcut_enabled": policy.owner_shortcut_enabled,
                        "updated_at": func.now(),
                    },
                )
            )
        return policy
