"""Persistence layer for flowplane executions."""

from __future__ import annotations

from typing import Dict, Optional

from ..config import FlowplaneConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import (
    ExecutionRecord,
    ExecutionStatus,
    StepRecord,
    StepStatus,
    derive_execution_status,
    ensure_transition,
)
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore

# One repository per database URL; "" is the process-local in-memory store.
_repositories: Dict[str, WorkflowRepository] = {}


def _open(database_url: str) -> WorkflowRepository:
    if not database_url:
        return InMemoryWorkflowRepository()
    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite":
        return SQLiteWorkflowRepository(location)
    if scheme in ("postgres", "postgresql"):
        if PostgresWorkflowRepository is None:
            raise RuntimeError("Postgres support not available, install flowplane[postgres]")
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[FlowplaneConfig] = None
) -> WorkflowRepository:
    """Return the execution repository for a database URL.

    Without an explicit ``database_url`` the URL comes from ``config``, or
    from :func:`load_config` (which applies ``FLOWPLANE_DATABASE_URL`` and
    ``DATABASE_URL``) when no config is given. An empty URL selects the
    in-memory repository. Repositories are opened once per URL, so a run and
    a later ``execution show`` in the same process read the same store.
    """
    if database_url is None:
        database_url = (config or load_config()).database_url or ""

    repository = _repositories.get(database_url)
    if repository is None:
        repository = _open(database_url)
        _repositories[database_url] = repository
    return repository


__all__ = [
    "ExecutionRecord",
    "ExecutionStatus",
    "StepRecord",
    "StepStatus",
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "derive_execution_status",
    "ensure_transition",
    "get_repository",
]
