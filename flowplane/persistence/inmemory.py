"""In-memory implementation of the execution repository."""

from __future__ import annotations

import copy
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import PersistenceError
from .models import (
    ExecutionRecord,
    ExecutionStatus,
    StepRecord,
    StepStatus,
    ensure_transition,
)
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store execution history in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}
        self._steps: Dict[str, StepRecord] = {}
        self._step_ids: Dict[str, List[str]] = defaultdict(list)

    # ------------------------------------------------------------------
    def _execution(self, execution_id: str) -> ExecutionRecord:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise PersistenceError(f"execution {execution_id} does not exist")
        return execution

    def _step(self, step_id: str) -> StepRecord:
        step = self._steps.get(step_id)
        if step is None:
            raise PersistenceError(f"step {step_id} does not exist")
        return step

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        if record.id in self._executions:
            raise PersistenceError(f"execution {record.id} already exists")
        self._executions[record.id] = record.model_copy(deep=True)

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
        execution = self._execution(execution_id)
        ensure_transition(execution.status, status)
        updates: Dict[str, Any] = {"status": status}
        if output is not None:
            updates["output"] = copy.deepcopy(output)
        if context is not None:
            updates["context"] = copy.deepcopy(context)
        if error is not None:
            updates["error"] = error
        if completed_at is not None:
            updates["completed_at"] = completed_at
        self._executions[execution_id] = execution.model_copy(update=updates)

    async def update_execution_context(self, execution_id: str, context: dict) -> None:
        execution = self._execution(execution_id)
        if execution.status.is_terminal:
            raise PersistenceError(f"execution {execution_id} is already {execution.status.value}")
        self._executions[execution_id] = execution.model_copy(
            update={"context": copy.deepcopy(context)}
        )

    async def create_step(self, record: StepRecord) -> None:
        self._execution(record.execution_id)
        if record.id in self._steps:
            raise PersistenceError(f"step {record.id} already exists")
        existing = self._step_ids[record.execution_id]
        if existing and self._steps[existing[-1]].step_index >= record.step_index:
            raise PersistenceError(
                f"step index {record.step_index} is not after "
                f"{self._steps[existing[-1]].step_index} for execution {record.execution_id}"
            )
        self._steps[record.id] = record.model_copy(deep=True)
        existing.append(record.id)

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
        step = self._step(step_id)
        ensure_transition(step.status, status)
        updates: Dict[str, Any] = {"status": status}
        fields = {
            "input": input,
            "output": output,
            "error": error,
            "started_at": started_at,
            "completed_at": completed_at,
            "duration_ms": duration_ms,
            "retry_count": retry_count,
        }
        updates.update(
            {key: copy.deepcopy(value) for key, value in fields.items() if value is not None}
        )
        self._steps[step_id] = step.model_copy(update=updates)

    async def increment_step_retry(self, step_id: str) -> None:
        step = self._step(step_id)
        if step.status.is_terminal:
            raise PersistenceError(f"step {step_id} is already {step.status.value}")
        self._steps[step_id] = step.model_copy(update={"retry_count": step.retry_count + 1})

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def get_execution_steps(self, execution_id: str) -> list[StepRecord]:
        steps = [self._steps[step_id] for step_id in self._step_ids.get(execution_id, [])]
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.step_index)]

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        executions = sorted(
            self._executions.values(), key=lambda e: e.started_at, reverse=True
        )
        return [e.model_copy(deep=True) for e in executions[:limit]]
