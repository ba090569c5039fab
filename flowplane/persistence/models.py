"""Data models for persisted execution state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set, Union

from pydantic import BaseModel, Field

from ..errors import IllegalTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_EXECUTION_STATUSES


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STEP_STATUSES


TERMINAL_EXECUTION_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)
TERMINAL_STEP_STATUSES = frozenset(
    {StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED}
)

EXECUTION_TRANSITIONS: Dict[ExecutionStatus, Set[ExecutionStatus]] = {
    ExecutionStatus.PENDING: {
        ExecutionStatus.RUNNING,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.RUNNING: {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
    ExecutionStatus.CANCELLED: set(),
}

STEP_TRANSITIONS: Dict[StepStatus, Set[StepStatus]] = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.SKIPPED, StepStatus.FAILED},
    StepStatus.RUNNING: {StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
    StepStatus.SKIPPED: set(),
}

AnyStatus = Union[ExecutionStatus, StepStatus]


def ensure_transition(current: AnyStatus, to: AnyStatus) -> None:
    """Raise ``IllegalTransitionError`` unless ``current -> to`` moves forward.

    Re-applying the current non-terminal status is allowed so that field
    updates (e.g. context snapshots) can ride along with the status.
    """
    table = EXECUTION_TRANSITIONS if isinstance(current, ExecutionStatus) else STEP_TRANSITIONS
    if to == current and not current.is_terminal:
        return
    if to not in table[current]:
        raise IllegalTransitionError(
            f"Illegal transition: {current.value} -> {to.value}"
        )


def allowed_predecessors(to: AnyStatus) -> list[str]:
    """Statuses a record may hold for ``to`` to be a legal update."""
    table: Dict[Any, Set[Any]] = (
        EXECUTION_TRANSITIONS if isinstance(to, ExecutionStatus) else STEP_TRANSITIONS
    )
    sources = [s.value for s, targets in table.items() if to in targets]
    if not to.is_terminal:
        sources.append(to.value)
    return sorted(set(sources))


class ExecutionRecord(BaseModel):
    """One run of a workflow against a concrete input."""

    id: str
    workflow_id: Optional[str] = None
    workflow_name: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    triggered_by: Optional[str] = None
    correlation_id: Optional[str] = None


class StepRecord(BaseModel):
    """Record of an individual step execution."""

    id: str
    execution_id: str
    step_name: str
    step_index: int
    status: StepStatus = StepStatus.PENDING
    input: Optional[Any] = None
    output: Optional[Any] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    retry_count: int = 0


def derive_execution_status(
    step_statuses: Iterable[StepStatus],
    continue_on_error: bool,
    interruption: Optional[BaseException] = None,
    cancelled: bool = False,
) -> ExecutionStatus:
    """Terminal execution status implied by its steps.

    Without ``continue_on_error`` a failed step must be the last one that
    was recorded; anything else means the orchestrator ran past a fatal
    failure.
    """
    statuses = list(step_statuses)
    if not continue_on_error and StepStatus.FAILED in statuses:
        if statuses.index(StepStatus.FAILED) != len(statuses) - 1:
            raise ValueError("steps were recorded after a fatal step failure")
    if cancelled:
        return ExecutionStatus.CANCELLED
    if interruption is not None or StepStatus.FAILED in statuses:
        return ExecutionStatus.FAILED
    return ExecutionStatus.COMPLETED
