"""Parse and validate workflow documents."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence, Tuple, Union

import yaml
from pydantic import ValidationError

from .contracts import WorkflowDefinition
from .errors import ExpressionSyntaxError, SchemaValidationError
from .expressions import is_literal, iter_strings, parse_template

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".yaml", ".yml", ".json")


def _format_loc(loc: Sequence[Union[str, int]]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def _translate(exc: ValidationError) -> SchemaValidationError:
    errors: list[Tuple[str, str]] = []
    for err in exc.errors():
        ctx = err.get("ctx") or {}
        if err["type"] == "duplicate_step_name":
            errors.append((ctx["path"], f"duplicate step name '{ctx['name']}'"))
        else:
            errors.append((_format_loc(err["loc"]), err["msg"]))
    path, message = errors[0]
    return SchemaValidationError(path, message, errors)


def _template_errors(definition: WorkflowDefinition) -> Iterator[Tuple[str, str]]:
    for index, step in enumerate(definition.steps):
        base = f"steps[{index}]"
        fields = [(f"{base}.params", step.params)]
        if step.gate is not None:
            fields.append((f"{base}.gate", step.gate))
        for root, value in fields:
            for path, text in iter_strings(value, root):
                try:
                    parse_template(text)
                except ExpressionSyntaxError as exc:
                    yield path, str(exc)
        if isinstance(step.condition, str) and not is_literal(step.condition):
            try:
                parse_template(step.condition)
            except ExpressionSyntaxError as exc:
                yield f"{base}.if", str(exc)


def parse_workflow(document: Mapping[str, Any]) -> WorkflowDefinition:
    """Validate ``document`` and return a typed ``WorkflowDefinition``.

    Raises:
        SchemaValidationError: naming the first offending field path.
    """
    if not isinstance(document, Mapping):
        raise SchemaValidationError("", "workflow document must be an object")

    try:
        definition = WorkflowDefinition.model_validate(dict(document))
    except ValidationError as exc:
        error = _translate(exc)
        logger.debug(f"Rejected workflow document: {error.errors}")
        raise error from exc

    errors = list(_template_errors(definition))
    if errors:
        path, message = errors[0]
        raise SchemaValidationError(path, message, errors)
    return definition


def load_workflow(path: Union[str, Path]) -> WorkflowDefinition:
    """Load a YAML or JSON workflow file."""
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SchemaValidationError("", f"cannot parse {path}: {exc}") from exc
    if document is None:
        raise SchemaValidationError("", f"{path} is empty")
    return parse_workflow(document)
