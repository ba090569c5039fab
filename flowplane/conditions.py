"""Evaluate step guard expressions."""

from __future__ import annotations

import logging
from typing import Any, Union

from .context import MISSING, ExecutionContext
from .errors import ConditionEvaluationError, ExpressionSyntaxError
from .expressions import is_literal, parse_literal, parse_template
from .resolver import VariableResolver

logger = logging.getLogger(__name__)


def is_truthy(value: Any) -> bool:
    """Falsy: missing, ``None``, ``False``, numeric zero, ``""`` and ``"false"``.

    A resolved value of ``"false"`` is text standing for a boolean, such as a
    string input or a boolean rendered into a longer template.
    """
    if value is MISSING or value is None or value is False:
        return False
    if isinstance(value, str):
        return value not in ("", "false")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    return True


class ConditionEvaluator:
    """Decide whether a step's ``if`` guard lets it run.

    The expression is either a literal primitive (``true``, ``0``, ``'x'``)
    or a template resolved against the context with missing paths treated
    as falsy. Comparison and boolean operators are not supported.
    """

    def __init__(self) -> None:
        self._resolver = VariableResolver(strict=False)

    def evaluate(self, expression: Union[bool, str], context: ExecutionContext) -> bool:
        if isinstance(expression, bool):
            return expression
        try:
            value = self._value(expression, context)
        except ConditionEvaluationError as exc:
            logger.warning(f"Condition {expression!r} could not be evaluated: {exc}")
            return False
        result = is_truthy(value)
        logger.debug(f"Condition {expression!r} -> {value!r} ({result})")
        return result

    def _value(self, expression: str, context: ExecutionContext) -> Any:
        try:
            if is_literal(expression):
                return parse_literal(expression)
            return self._resolver.resolve_template(parse_template(expression), context)
        except ExpressionSyntaxError as exc:
            raise ConditionEvaluationError(str(exc)) from exc
