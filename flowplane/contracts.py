"""Typed workflow definition contracts."""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    JsonValue,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

_TOOL_PART = r"[A-Za-z_][A-Za-z0-9_-]*"
_TOOL_RE = re.compile(rf"^({_TOOL_PART})\.({_TOOL_PART})$")
_VARIABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_tool_reference(tool_ref: str) -> Tuple[str, str]:
    """Split ``"namespace.identifier"`` into its two halves."""
    match = _TOOL_RE.match(tool_ref or "")
    if match is None:
        raise ValueError(
            f"invalid tool reference '{tool_ref}', expected 'namespace.identifier'"
        )
    return match.group(1), match.group(2)


class BackoffStrategy(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class RetryPolicy(_DocumentModel):
    """How often, and how patiently, a failing step is retried."""

    max_attempts: int = Field(default=1, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.FIXED
    base_delay: int = Field(default=0, ge=0, description="Delay unit in milliseconds")


class WorkflowConfig(_DocumentModel):
    """Workflow-wide execution settings."""

    timeout_ms: Optional[int] = Field(default=None, gt=0)
    continue_on_error: bool = False
    max_retries: int = Field(default=0, ge=0)


class StepDefinition(_DocumentModel):
    """Defines one step in a workflow."""

    name: str = Field(min_length=1)
    tool: str
    params: JsonValue = Field(default_factory=dict)
    assign: Optional[str] = None
    condition: Optional[Union[bool, str]] = Field(
        default=None,
        validation_alias=AliasChoices("if", "condition"),
        serialization_alias="if",
    )
    retry: Optional[RetryPolicy] = None
    gate: Optional[Dict[str, JsonValue]] = None
    description: Optional[str] = None

    @field_validator("tool")
    @classmethod
    def _check_tool(cls, v: str) -> str:
        parse_tool_reference(v)
        return v

    @field_validator("assign")
    @classmethod
    def _check_assign(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _VARIABLE_RE.match(v):
            raise ValueError(f"'{v}' is not a valid variable name")
        return v


class WorkflowDefinition(BaseModel):
    """A parsed, internally consistent workflow document."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    name: str = Field(min_length=1)
    description: str = ""
    steps: Tuple[StepDefinition, ...] = Field(min_length=1)
    config: WorkflowConfig = Field(default_factory=WorkflowConfig)

    @model_validator(mode="after")
    def _unique_step_names(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for index, step in enumerate(self.steps):
            if step.name in seen:
                raise PydanticCustomError(
                    "duplicate_step_name",
                    "{path}: duplicate step name '{name}'",
                    {"path": f"steps[{index}].name", "name": step.name},
                )
            seen.add(step.name)
        return self

    def to_document(self) -> dict:
        """Serialize back to the camelCase document shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
