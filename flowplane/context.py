"""Per-execution variable context."""

from __future__ import annotations

import copy
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from .expressions import Path, parse_path

NAMESPACES = ("input", "repo", "variables")


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def _walk(value: Any, path: Path) -> Any:
    current = value
    for part in path:
        if isinstance(current, Mapping):
            key = str(part)
            if key not in current:
                return MISSING
            current = current[key]
        elif isinstance(current, list) and isinstance(part, int):
            if part >= len(current):
                return MISSING
            current = current[part]
        else:
            return MISSING
    return current


class ExecutionContext:
    """State visible to the steps of one execution.

    ``input`` and ``repo`` are fixed when the execution starts. ``variables``
    accumulates step outputs; each ``set`` swaps in a new mapping so a reader
    never observes a half-applied write, and values are copied on the way in
    so nothing outside the context can alias them.
    """

    def __init__(
        self,
        input: Optional[Mapping[str, Any]] = None,
        repo: Optional[Mapping[str, Any]] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._input: Dict[str, Any] = copy.deepcopy(dict(input or {}))
        self._repo: Dict[str, Any] = copy.deepcopy(dict(repo or {}))
        self._variables: Dict[str, Any] = copy.deepcopy(dict(variables or {}))

    @property
    def input(self) -> Mapping[str, Any]:
        return MappingProxyType(self._input)

    @property
    def repo(self) -> Mapping[str, Any]:
        return MappingProxyType(self._repo)

    @property
    def variables(self) -> Mapping[str, Any]:
        return MappingProxyType(self._variables)

    def get(self, path: Union[str, Path]) -> Any:
        """Return the value at ``path`` or ``MISSING``.

        Paths rooted at ``input``, ``repo`` or ``variables`` address that
        namespace; any other root is looked up in ``variables``.
        """
        parts = parse_path(path) if isinstance(path, str) else tuple(path)
        if not parts:
            return MISSING
        root, rest = parts[0], parts[1:]
        if root == "input":
            return _walk(self._input, rest)
        if root == "repo":
            return _walk(self._repo, rest)
        if root == "variables":
            return _walk(self._variables, rest)
        return _walk(self._variables, parts)

    def set(self, name: str, value: Any) -> None:
        updated = dict(self._variables)
        updated[name] = copy.deepcopy(value)
        self._variables = updated

    def has(self, name: str) -> bool:
        return name in self._variables

    def snapshot(self) -> Dict[str, Any]:
        """Detached deep copy safe to hand to persistence."""
        return copy.deepcopy(
            {"input": self._input, "repo": self._repo, "variables": self._variables}
        )
