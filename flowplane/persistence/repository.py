"""Repository abstraction for execution state persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from .models import ExecutionRecord, ExecutionStatus, StepRecord, StepStatus


class WorkflowRepository(Protocol):
    """Protocol for append-only execution history backends.

    Records are created once; afterwards only their state fields move
    forward. Backends raise ``PersistenceError`` when a write is rejected,
    e.g. a duplicate id or a backwards status transition.
    """

    async def create_execution(self, record: ExecutionRecord) -> None:
        """Persist a new execution record."""

    async def update_execution_status(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        output: Optional[dict] = None,
        context: Optional[dict] = None,
        error: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        """Move the execution forward, optionally recording its result."""

    async def update_execution_context(self, execution_id: str, context: dict) -> None:
        """Store the latest context snapshot of a running execution."""

    async def create_step(self, record: StepRecord) -> None:
        """Persist a new step record."""

    async def update_step(
        self,
        step_id: str,
        status: StepStatus,
        *,
        input: Any = None,
        output: Any = None,
        error: Optional[str] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        duration_ms: Optional[int] = None,
        retry_count: Optional[int] = None,
    ) -> None:
        """Move a step forward. ``None`` arguments leave the field unchanged."""

    async def increment_step_retry(self, step_id: str) -> None:
        """Bump the retry counter of a running step."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution by id."""

    async def get_execution_steps(self, execution_id: str) -> list[StepRecord]:
        """Return the steps of an execution ordered by step index."""

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        """Return the most recently started executions."""
