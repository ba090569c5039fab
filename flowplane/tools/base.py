"""Base interface for tool invocation backends."""

from __future__ import annotations

import abc

from pydantic import JsonValue


class ToolInvoker(metaclass=abc.ABCMeta):
    """Abstract capability that runs a ``namespace.identifier`` tool."""

    @abc.abstractmethod
    async def invoke(self, tool_ref: str, params: JsonValue) -> JsonValue:
        """Call ``tool_ref`` once with ``params`` and return its JSON result.

        Implementations raise ``ToolError`` (optionally non-retryable) for
        failures they can classify; anything else is treated as retryable.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        pass
