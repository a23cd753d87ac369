"""Durable workflow state: repository protocol, backends and factory."""

from __future__ import annotations

from typing import Optional

from ..config import ConciergeConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def create_repository(database_url: Optional[str]) -> WorkflowRepository:
    """Build a new repository for ``database_url``.

    ``None``, ``""`` and ``memory://`` give the in-memory store,
    ``sqlite://<path>`` a SQLite file and ``postgres(ql)://...`` PostgreSQL.
    """
    if not database_url or database_url == "memory://":
        return InMemoryWorkflowRepository()

    scheme, sep, rest = database_url.partition("://")
    if not sep:
        raise ValueError(f"Unsupported database backend: {database_url}")
    if scheme == "sqlite":
        return SQLiteWorkflowRepository(rest)
    if scheme in ("postgres", "postgresql"):
        from .postgres import PostgresWorkflowRepository

        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[ConciergeConfig] = None
) -> WorkflowRepository:
    """Return the process-wide repository, creating it on first use.

    Passing ``database_url`` or ``config`` always builds a fresh repository
    and makes it the shared one. Otherwise the URL comes from
    ``CONCIERGE_DATABASE_URL``, ``DATABASE_URL`` or the loaded configuration.
    """
    global _repository_instance
    if database_url is None and config is None and _repository_instance is not None:
        return _repository_instance

    if database_url is None:
        database_url = (config or load_config()).database_url
    _repository_instance = create_repository(database_url)
    return _repository_instance


__all__ = [
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "WorkflowRepository",
    "create_repository",
    "get_repository",
]
