"""Recursive ``${path}`` substitution over JSON parameter trees."""

from __future__ import annotations

import copy
import json
from typing import Any

from .context import MISSING, ExecutionContext
from .errors import UnresolvedVariableError
from .expressions import Reference, Template, parse_template


def stringify(value: Any) -> str:
    """Render a value for insertion into a larger string."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class VariableResolver:
    """Substitute context values into step parameters.

    A string that is exactly one ``${path}`` token is replaced by the value
    itself, keeping its JSON type. Tokens embedded in longer text are
    stringified and concatenated. In strict mode a missing path raises
    ``UnresolvedVariableError``; otherwise a whole-value token becomes
    ``MISSING`` and an embedded one makes the whole string ``MISSING``.
    """

    def __init__(self, strict: bool = True) -> None:
        self.strict = strict

    def resolve(self, value: Any, context: ExecutionContext, step_name: str = "") -> Any:
        if isinstance(value, str):
            return self.resolve_template(parse_template(value), context, step_name)
        if isinstance(value, dict):
            return {
                key: self.resolve(item, context, step_name) for key, item in value.items()
            }
        if isinstance(value, list):
            return [self.resolve(item, context, step_name) for item in value]
        return value

    def resolve_template(
        self, template: Template, context: ExecutionContext, step_name: str = ""
    ) -> Any:
        single = template.single_reference
        if single is not None:
            found = self._lookup(single, context, step_name)
            return found if found is MISSING else copy.deepcopy(found)

        parts: list[str] = []
        for segment in template.segments:
            if isinstance(segment, Reference):
                found = self._lookup(segment, context, step_name)
                if found is MISSING:
                    return MISSING
                parts.append(stringify(found))
            else:
                parts.append(segment.value)
        return "".join(parts)

    def _lookup(self, ref: Reference, context: ExecutionContext, step_name: str) -> Any:
        found = context.get(ref.path)
        if found is MISSING and self.strict:
            raise UnresolvedVariableError(step_name, ref.source)
        return found
