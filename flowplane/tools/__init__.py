"""Tool invocation capability and the process-wide registry."""

from __future__ import annotations

from typing import Callable, Optional

from .base import ToolInvoker
from .models import ToolDescriptor
from .registry import ToolFunc, ToolRegistry

# Process-wide registry used by the CLI. Modules passed with ``--tools``
# register their callables here on import.
REGISTRY = ToolRegistry()


def register_tool(
    tool_ref: str, description: Optional[str] = None
) -> Callable[[ToolFunc], ToolFunc]:
    """Register the decorated callable in ``REGISTRY`` under ``tool_ref``."""
    return REGISTRY.tool(tool_ref, description=description)


__all__ = [
    "ToolInvoker",
    "ToolDescriptor",
    "ToolRegistry",
    "REGISTRY",
    "register_tool",
]
