"""Sequential middleware execution."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from waypoint.result import Fail

if TYPE_CHECKING:
    from waypoint.context import RequestContext
    from waypoint.types import Middleware


def run_chain(middleware: Iterable[Middleware], ctx: RequestContext) -> Fail | None:
    """Run middleware in order against ctx.

    Returns the first Fail a middleware returns, skipping everything after it,
    or None once every middleware has run. Exceptions are not caught here:
    they stop the chain the same way and the Dispatcher reports them as
    unclassified failures.
    """
    for mw in middleware:
        result = mw(ctx)
        if isinstance(result, Fail):
            return result
    return None
