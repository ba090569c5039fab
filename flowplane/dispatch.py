"""Single-attempt step dispatch."""

from __future__ import annotations

import logging

from pydantic import JsonValue, TypeAdapter, ValidationError

from .contracts import StepDefinition
from .errors import StepExecutionError, ToolError
from .tools import ToolInvoker

logger = logging.getLogger(__name__)

_RESULT = TypeAdapter(JsonValue)


class StepDispatcher:
    """Issue exactly one tool call for a step and classify its failure."""

    def __init__(self, invoker: ToolInvoker) -> None:
        self._invoker = invoker

    async def dispatch(
        self, step: StepDefinition, params: JsonValue, attempt: int = 1
    ) -> JsonValue:
        """Call the step's tool once.

        Raises:
            StepExecutionError: wrapping whatever the tool raised. A
                ``ToolError`` keeps its own ``retryable`` flag; any other
                exception is considered retryable. A result that is not a
                JSON value is a non-retryable failure.
        """
        logger.debug(
            f"Dispatching {step.tool} for step {step.name} (attempt {attempt})",
            extra={"step": step.name, "attempt": attempt},
        )
        try:
            result = await self._invoker.invoke(step.tool, params)
        except ToolError as exc:
            raise StepExecutionError(step.name, attempt, exc, retryable=exc.retryable) from exc
        except Exception as exc:
            raise StepExecutionError(step.name, attempt, exc, retryable=True) from exc

        try:
            return _RESULT.validate_python(result)
        except ValidationError as exc:
            error = ToolError(
                f"tool {step.tool} returned a non-JSON value of type {type(result).__name__}",
                retryable=False,
            )
            raise StepExecutionError(step.name, attempt, error, retryable=False) from exc
