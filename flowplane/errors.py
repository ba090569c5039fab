"""Exception hierarchy for the flowplane workflow engine."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class FlowplaneError(Exception):
    """Base class for all engine errors."""


def describe_error(exc: BaseException) -> str:
    """Render ``exc`` as ``"<ErrorClass>: <message>"`` for execution records."""
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


class SchemaValidationError(FlowplaneError):
    """A workflow document failed validation.

    ``path`` is the first offending field (e.g. ``steps[1].tool``) and
    ``errors`` holds every ``(path, message)`` pair that was found.
    """

    def __init__(self, path: str, message: str, errors: Optional[Sequence[Tuple[str, str]]] = None):
        self.path = path
        self.message = message
        self.errors = list(errors) if errors else [(path, message)]
        super().__init__(f"{path}: {message}" if path else message)


class ExpressionSyntaxError(FlowplaneError, ValueError):
    """A ``${...}`` token or condition literal could not be parsed."""


class UnresolvedVariableError(FlowplaneError):
    """A whole or embedded ``${path}`` did not resolve against the context."""

    def __init__(self, step: str, path: str):
        self.step = step
        self.path = path
        super().__init__(f"step '{step}' references unresolved variable '{path}'")


class ConditionEvaluationError(FlowplaneError):
    """Raised inside the condition evaluator; never escapes it."""


class ToolError(FlowplaneError):
    """Failure reported by a tool implementation.

    Tools raise this with ``retryable=False`` to stop the retry loop, e.g. when
    their input failed validation.
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ToolNotFoundError(ToolError):
    def __init__(self, tool_ref: str):
        super().__init__(f"no tool registered for '{tool_ref}'", retryable=False)
        self.tool_ref = tool_ref


class StepExecutionError(FlowplaneError):
    """One failed dispatch attempt of a step."""

    def __init__(self, step: str, attempt: int, cause: BaseException, retryable: bool = True):
        self.step = step
        self.attempt = attempt
        self.cause = cause
        self.retryable = retryable
        super().__init__(f"step '{step}' failed on attempt {attempt}: {describe_error(cause)}")


class GateRejectedError(FlowplaneError):
    """A decision gate refused to let a step proceed."""

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"step '{step}' blocked by decision gate: {reason}")


class WorkflowTimeoutError(FlowplaneError, TimeoutError):
    """The execution exceeded its wall-clock budget."""

    def __init__(self, timeout_ms: int, step: Optional[str] = None):
        self.timeout_ms = timeout_ms
        self.step = step
        where = f" while running step '{step}'" if step else ""
        super().__init__(f"workflow exceeded timeout of {timeout_ms}ms{where}")


class ExecutionCancelledError(FlowplaneError):
    """The execution was cancelled from outside."""


class PersistenceError(FlowplaneError):
    """The execution store rejected or failed a write."""


class IllegalTransitionError(PersistenceError):
    """A status update would move a record backwards in its state machine."""


__all__ = [
    "FlowplaneError",
    "SchemaValidationError",
    "ExpressionSyntaxError",
    "UnresolvedVariableError",
    "ConditionEvaluationError",
    "ToolError",
    "ToolNotFoundError",
    "StepExecutionError",
    "GateRejectedError",
    "WorkflowTimeoutError",
    "ExecutionCancelledError",
    "PersistenceError",
    "IllegalTransitionError",
    "describe_error",
]
