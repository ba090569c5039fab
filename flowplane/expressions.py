"""Small grammar for ``${path}`` templates and condition literals.

Template grammar::

    template  := (text | "${" path "}")*
    path      := name ("." (name | index) | "[" index "]")*
    name      := [A-Za-z0-9_-]+
    index     := [0-9]+

An unterminated ``${`` is kept as literal text. Literal primitives used by
conditions are ``true``, ``false``, ``null``, integers, floats and quoted
strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Tuple, Union

from .errors import ExpressionSyntaxError

PathSegment = Union[str, int]
Path = Tuple[PathSegment, ...]

_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")
_INT_RE = re.compile(r"-?\d+")
_FLOAT_RE = re.compile(r"-?\d+\.\d+(?:[eE][+-]?\d+)?|-?\d+[eE][+-]?\d+")


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Reference:
    path: Path
    source: str


Segment = Union[Text, Reference]


@dataclass(frozen=True)
class Template:
    segments: Tuple[Segment, ...]

    @property
    def single_reference(self) -> Optional[Reference]:
        """The reference when the whole template is exactly one token."""
        if len(self.segments) == 1 and isinstance(self.segments[0], Reference):
            return self.segments[0]
        return None

    @property
    def references(self) -> Tuple[Reference, ...]:
        return tuple(s for s in self.segments if isinstance(s, Reference))

    @property
    def is_plain(self) -> bool:
        return not self.references


def parse_path(expr: str) -> Path:
    """Parse ``issue.labels[0].name`` into ``("issue", "labels", 0, "name")``."""
    source = expr.strip()
    if not source:
        raise ExpressionSyntaxError("empty variable path")

    segments: list[PathSegment] = []
    pos = 0
    expect_name = True
    while pos < len(source):
        if expect_name:
            match = _NAME_RE.match(source, pos)
            if match is None:
                raise ExpressionSyntaxError(
                    f"invalid variable path '{expr}' at position {pos}"
                )
            name = match.group(0)
            segments.append(int(name) if name.isdigit() and segments else name)
            pos = match.end()
            expect_name = False
            continue

        char = source[pos]
        if char == ".":
            pos += 1
            expect_name = True
            if pos == len(source):
                raise ExpressionSyntaxError(f"variable path '{expr}' ends with '.'")
        elif char == "[":
            end = source.find("]", pos)
            index = source[pos + 1 : end] if end != -1 else ""
            if end == -1 or not index.isdigit():
                raise ExpressionSyntaxError(
                    f"invalid index in variable path '{expr}' at position {pos}"
                )
            segments.append(int(index))
            pos = end + 1
        else:
            raise ExpressionSyntaxError(
                f"unexpected '{char}' in variable path '{expr}' at position {pos}"
            )

    return tuple(segments)


def parse_template(text: str) -> Template:
    """Split ``text`` into literal text and ``${path}`` references."""
    segments: list[Segment] = []
    buffer: list[str] = []
    pos = 0
    while pos < len(text):
        start = text.find("${", pos)
        if start == -1:
            buffer.append(text[pos:])
            break
        end = text.find("}", start + 2)
        if end == -1:
            buffer.append(text[pos:])
            break
        buffer.append(text[pos:start])
        if buffer and any(buffer):
            segments.append(Text("".join(buffer)))
        buffer = []
        source = text[start + 2 : end].strip()
        segments.append(Reference(path=parse_path(source), source=source))
        pos = end + 1

    if buffer and any(buffer):
        segments.append(Text("".join(buffer)))
    return Template(segments=tuple(segments))


def parse_literal(text: str) -> Any:
    """Parse a condition literal primitive or raise ``ExpressionSyntaxError``."""
    token = text.strip()
    if token == "true":
        return True
    if token == "false":
        return False
    if token == "null":
        return None
    if _INT_RE.fullmatch(token):
        return int(token)
    if _FLOAT_RE.fullmatch(token):
        return float(token)
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    raise ExpressionSyntaxError(f"'{text}' is not a literal")


def is_literal(text: str) -> bool:
    try:
        parse_literal(text)
    except ExpressionSyntaxError:
        return False
    return True


def iter_strings(value: Any, path: str = "") -> Iterator[Tuple[str, str]]:
    """Yield ``(field_path, string)`` for every string leaf of a JSON tree."""
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_strings(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from iter_strings(item, f"{path}[{index}]")
