"""Route templates: parsing into segments and matching request paths.

A template such as ``/api/user/{id}`` is split on ``/`` into segments. A
segment wrapped in braces is a named variable, anything else is a literal.
There is no escaping: a segment shaped like ``{x}`` is always a variable.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache


@dataclass(slots=True, frozen=True)
class Literal:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(slots=True, frozen=True)
class Variable:
    name: str

    def __str__(self) -> str:
        return "{" + self.name + "}"


type Segment = Literal | Variable


def split_path(path: str) -> tuple[str, ...]:
    """Split a path into segments, ignoring a single leading "/".

    "/" and "" both give a single empty segment, so the root route has one
    segment like any other single-segment path.
    """
    if path.startswith("/"):
        path = path[1:]
    return tuple(path.split("/"))


@dataclass(slots=True, frozen=True)
class RoutePattern:
    """Parsed route template. Immutable after construction."""

    source: str
    segments: tuple[Segment, ...]

    def __len__(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        return self.source

    @property
    def variables(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.segments if isinstance(s, Variable))

    def match(
        self,
        segments: Sequence[str],
        validators: Mapping[str, re.Pattern[str]] | None = None,
    ) -> dict[str, str] | None:
        """Match request segments, returning the bound variables or None.

        Literal segments must be equal. Variable segments bind the request
        value, which must fully match the variable's validator if one is set.
        Any mismatch rejects the whole route; partial bindings are discarded.
        """
        if len(segments) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for seg, value in zip(self.segments, segments, strict=True):
            if isinstance(seg, Literal):
                if seg.text != value:
                    return None
                continue
            if validators:
                validator = validators.get(seg.name)
                if validator is not None and validator.fullmatch(value) is None:
                    return None
            params[seg.name] = value
        return params


@lru_cache(maxsize=1024)
def parse(pattern: str) -> RoutePattern:
    """Parse a route template into a RoutePattern.

    Raises ValueError for variables with an empty name or a name used twice.
    """
    segments: list[Segment] = []
    seen: set[str] = set()
    for part in split_path(pattern):
        if part.startswith("{") and part.endswith("}"):
            name = part[1:-1]
            if not name:
                msg = f"variable segment must have a name, provided {pattern=}"
                raise ValueError(msg)
            if name in seen:
                msg = f"variable {name!r} is used twice in {pattern=}"
                raise ValueError(msg)
            seen.add(name)
            segments.append(Variable(name))
        else:
            segments.append(Literal(part))
    return RoutePattern(source=pattern, segments=tuple(segments))


def compile_validators(
    pattern: RoutePattern, validators: Mapping[str, str | re.Pattern[str]] | None
) -> dict[str, re.Pattern[str]]:
    """Compile validator regexes, rejecting names the pattern does not declare."""
    if not validators:
        return {}
    compiled: dict[str, re.Pattern[str]] = {}
    variables = pattern.variables
    for name, regex in validators.items():
        if name not in variables:
            msg = f"validator for unknown variable {name!r} in {pattern.source!r}"
            raise ValueError(msg)
        if not regex:  # empty validator means "no validation"
            continue
        compiled[name] = regex if isinstance(regex, re.Pattern) else re.compile(regex)
    return compiled
