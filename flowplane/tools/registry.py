"""In-process tool registry."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import JsonValue

from ..contracts import parse_tool_reference
from ..errors import ToolNotFoundError
from .base import ToolInvoker
from .models import ToolDescriptor

logger = logging.getLogger(__name__)

ToolFunc = Callable[[JsonValue], Union[JsonValue, Awaitable[JsonValue]]]


class ToolRegistry(ToolInvoker):
    """Resolve ``namespace.identifier`` references to local callables.

    Coroutine functions are awaited directly; plain functions run in a worker
    thread so a slow tool only blocks the execution that called it.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tuple[ToolFunc, ToolDescriptor]] = {}

    def register(
        self,
        tool_ref: str,
        func: ToolFunc,
        description: Optional[str] = None,
        replace: bool = False,
    ) -> ToolDescriptor:
        namespace, identifier = parse_tool_reference(tool_ref)
        if tool_ref in self._tools and not replace:
            raise ValueError(f"tool '{tool_ref}' is already registered")
        doc = inspect.getdoc(func)
        descriptor = ToolDescriptor(
            namespace=namespace,
            identifier=identifier,
            description=description or (doc.splitlines()[0] if doc else None),
            is_async=inspect.iscoroutinefunction(func),
        )
        self._tools[tool_ref] = (func, descriptor)
        logger.debug(f"Registered tool {tool_ref}")
        return descriptor

    def tool(
        self, tool_ref: str, description: Optional[str] = None
    ) -> Callable[[ToolFunc], ToolFunc]:
        """Decorator form of :meth:`register`."""

        def decorator(func: ToolFunc) -> ToolFunc:
            self.register(tool_ref, func, description=description)
            return func

        return decorator

    def unregister(self, tool_ref: str) -> None:
        self._tools.pop(tool_ref, None)

    def describe(self) -> List[ToolDescriptor]:
        return sorted(
            (descriptor for _, descriptor in self._tools.values()),
            key=lambda d: d.reference,
        )

    def __contains__(self, tool_ref: object) -> bool:
        return tool_ref in self._tools

    async def invoke(self, tool_ref: str, params: JsonValue) -> Any:
        entry = self._tools.get(tool_ref)
        if entry is None:
            raise ToolNotFoundError(tool_ref)
        func, descriptor = entry
        if descriptor.is_async:
            result = func(params)
        else:
            result = await asyncio.to_thread(func, params)
        if inspect.isawaitable(result):
            result = await result
        return result
