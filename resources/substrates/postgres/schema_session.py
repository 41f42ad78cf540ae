"""Service-schema scoped session helpers for Postgres shared infrastructure."""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from resources.substrates.postgres.session import transactional_session

_SCHEMA_RE = re.compile(r"^[a-z][a-z0-9_]{1,62}$")


class ServiceSchemaSessionProvider:
    """Provide transactional sessions pinned to one service-owned schema.

    One ``session()`` block is one transaction. Repositories that must write
    several rows atomically do so inside a single block.
    """

    def __init__(self, *, session_factory: sessionmaker[Session], schema: str) -> None:
        if not _SCHEMA_RE.fullmatch(schema):
            raise ValueError(f"invalid postgres schema name: {schema!r}")
        self._session_factory = session_factory
        self._schema = schema

    @property
    def schema(self) -> str:
        return self._schema

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a transaction-scoped session with local search_path set."""
        with transactional_session(self._session_factory) as db:
            db.execute(text(f"SET LOCAL search_path TO {self._schema}, public"))
            yield db
