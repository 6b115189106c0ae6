"""Result values returned by middleware and handlers.

A middleware returns ``None`` (or ``Ok(None)``) to continue the chain and a
``Fail`` to stop it. A handler returns its output, either bare or wrapped in
``Ok``, or a ``Fail`` to respond with an explicit status instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class Ok[T]:
    value: T = None  # type: ignore[assignment]


@dataclass(slots=True, frozen=True)
class Fail:
    """Abort the request with ``status`` (500 when unset) and optional output."""

    status: int | None = None
    output: Any = None
    headers: tuple[tuple[str, str], ...] = field(default=())

    @property
    def status_code(self) -> int:
        return self.status if self.status is not None else 500


type Result[T] = Ok[T] | Fail


def unwrap_output(returned: object) -> Result[Any]:
    """Normalize a handler's return value into a Result."""
    if isinstance(returned, Ok | Fail):
        return returned
    return Ok(returned)
