"""Pydantic models describing registered tools."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class ToolDescriptor(BaseModel):
    """Metadata describing a registered tool."""

    namespace: str
    identifier: str
    description: Optional[str] = None
    is_async: bool = True

    @property
    def reference(self) -> str:
        return f"{self.namespace}.{self.identifier}"
