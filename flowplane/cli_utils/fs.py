"""Filesystem helpers for the ``workflow discover`` command."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Iterable, Iterator, Set

from ..parser import WORKFLOW_SUFFIXES

_ALWAYS_IGNORED = {
    ".git/",
    ".venv/",
    "venv/",
    "node_modules/",
    "__pycache__/",
    "build/",
    "dist/",
    "*.egg-info/",
    ".pytest_cache/",
}


def _read_gitignore_patterns(search_path: Path) -> Set[str]:
    """Collect patterns from ``.gitignore`` files in ``search_path`` and its parents."""
    patterns = set(_ALWAYS_IGNORED)
    directory = search_path if search_path.is_dir() else search_path.parent
    for current in (directory, *directory.parents):
        gitignore = current / ".gitignore"
        if not gitignore.is_file():
            continue
        try:
            lines = gitignore.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            continue
        patterns.update(
            line.strip() for line in lines if line.strip() and not line.startswith("#")
        )
    return patterns


def _is_ignored(path: Path, patterns: Iterable[str], base_path: Path) -> bool:
    try:
        relative = path.relative_to(base_path)
    except ValueError:
        return False

    relative_str = relative.as_posix()
    for pattern in patterns:
        if pattern.endswith("/"):
            dir_pattern = pattern.rstrip("/")
            # only directories match, never the file itself
            if any(fnmatch.fnmatch(part, dir_pattern) for part in relative.parts[:-1]):
                return True
            continue
        pattern = pattern.lstrip("/")
        if fnmatch.fnmatch(path.name, pattern) or fnmatch.fnmatch(relative_str, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in relative.parts[:-1]):
            return True
    return False


def _iter_workflow_files(
    search_path: Path, respect_gitignore: bool = True
) -> Iterator[Path]:
    """Yield YAML and JSON files under ``search_path`` in sorted order."""

    if search_path.is_file():
        if search_path.suffix in WORKFLOW_SUFFIXES:
            yield search_path
        return

    patterns: Set[str] = (
        _read_gitignore_patterns(search_path) if respect_gitignore else set()
    )
    candidates = sorted(
        p for p in search_path.rglob("*") if p.suffix in WORKFLOW_SUFFIXES and p.is_file()
    )
    for candidate in candidates:
        if respect_gitignore and _is_ignored(candidate, patterns, search_path):
            continue
        yield candidate


def _format_display_path(path: Path, search_path: Path) -> str:
    """Render ``path`` relative to the search root or the working directory."""
    resolved = path.resolve()
    base = search_path if search_path.is_dir() else search_path.parent
    for candidate in (base.resolve(), Path.cwd()):
        try:
            return f"./{resolved.relative_to(candidate)}"
        except ValueError:
            continue
    return str(path)
