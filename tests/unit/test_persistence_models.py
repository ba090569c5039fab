import pytest

from flowplane.errors import IllegalTransitionError, WorkflowTimeoutError
from flowplane.persistence.models import (
    ExecutionStatus,
    StepStatus,
    allowed_predecessors,
    derive_execution_status,
    ensure_transition,
)


@pytest.mark.parametrize(
    "current, to",
    [
        (ExecutionStatus.PENDING, ExecutionStatus.RUNNING),
        (ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED),
        (ExecutionStatus.RUNNING, ExecutionStatus.RUNNING),
        (StepStatus.PENDING, StepStatus.SKIPPED),
        (StepStatus.PENDING, StepStatus.FAILED),
        (StepStatus.RUNNING, StepStatus.COMPLETED),
    ],
)
def test_forward_transitions_allowed(current, to):
    ensure_transition(current, to)


@pytest.mark.parametrize(
    "current, to",
    [
        (ExecutionStatus.COMPLETED, ExecutionStatus.RUNNING),
        (ExecutionStatus.FAILED, ExecutionStatus.FAILED),
        (ExecutionStatus.RUNNING, ExecutionStatus.PENDING),
        (StepStatus.SKIPPED, StepStatus.RUNNING),
        (StepStatus.COMPLETED, StepStatus.FAILED),
        (StepStatus.RUNNING, StepStatus.SKIPPED),
    ],
)
def test_backward_or_terminal_transitions_rejected(current, to):
    with pytest.raises(IllegalTransitionError):
        ensure_transition(current, to)


def test_allowed_predecessors():
    assert allowed_predecessors(StepStatus.COMPLETED) == ["running"]
    assert allowed_predecessors(StepStatus.RUNNING) == ["pending", "running"]
    assert allowed_predecessors(ExecutionStatus.CANCELLED) == ["pending", "running"]


def test_derive_execution_status():
    ok = [StepStatus.COMPLETED, StepStatus.SKIPPED]
    assert derive_execution_status(ok, False) is ExecutionStatus.COMPLETED
    assert derive_execution_status([StepStatus.COMPLETED, StepStatus.FAILED], False) is ExecutionStatus.FAILED
    assert (
        derive_execution_status([StepStatus.FAILED, StepStatus.COMPLETED], True)
        is ExecutionStatus.FAILED
    )
    assert (
        derive_execution_status(ok, False, interruption=WorkflowTimeoutError(10))
        is ExecutionStatus.FAILED
    )
    assert derive_execution_status([StepStatus.FAILED], False, cancelled=True) is ExecutionStatus.CANCELLED
    assert derive_execution_status([], False) is ExecutionStatus.COMPLETED


def test_steps_after_fatal_failure_are_inconsistent():
    with pytest.raises(ValueError):
        derive_execution_status([StepStatus.FAILED, StepStatus.COMPLETED], False)
