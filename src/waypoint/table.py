"""Insertion-ordered route table.

Routes are bucketed by (method, segment count) so a lookup only scans
candidates of the right shape. Each bucket is a list kept in registration
order: when several patterns could match, the first registered one wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from waypoint.errors import (
    DuplicateRouteError,
    MethodNotAllowedError,
    RouteNotFoundError,
)
from waypoint.pattern import RoutePattern, compile_validators, parse
from waypoint.types import Handler, HTTPMethod, Middleware

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Route:
    pattern: RoutePattern
    method: HTTPMethod
    handler: Handler
    validators: Mapping[str, re.Pattern[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    middleware: tuple[Middleware, ...] = field(default=())

    @property
    def url(self) -> str:
        return self.pattern.source


@dataclass(slots=True, frozen=True)
class RouteMatch:
    route: Route
    params: dict[str, str]


class RouteTable:
    __slots__ = ("_buckets", "_keys", "_routes")
    _routes: list[Route]
    _keys: set[tuple[str, HTTPMethod]]
    _buckets: dict[tuple[HTTPMethod, int], list[Route]]

    def __init__(self) -> None:
        self._routes = []
        self._keys = set()
        self._buckets = {}

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def register(
        self,
        pattern: str,
        method: str | HTTPMethod | Iterable[str | HTTPMethod],
        handler: Handler,
        validators: Mapping[str, str | re.Pattern[str]] | None = None,
        middleware: Sequence[Middleware] = (),
    ) -> list[Route]:
        """Registers handler at pattern for one or more methods.

        Registration is all-or-nothing: every method is checked against the
        table (and against the other methods in the same call) before any
        route is inserted, so a DuplicateRouteError leaves the table unchanged.
        """
        methods = _methods(method)
        parsed = parse(pattern)
        compiled = MappingProxyType(compile_validators(parsed, validators))
        chain = tuple(middleware)

        seen: set[HTTPMethod] = set()
        for m in methods:
            if (pattern, m) in self._keys or m in seen:
                raise DuplicateRouteError(pattern, m.value)
            seen.add(m)

        routes = [
            Route(
                pattern=parsed,
                method=m,
                handler=handler,
                validators=compiled,
                middleware=chain,
            )
            for m in methods
        ]
        for route in routes:
            self._routes.append(route)
            self._keys.add((pattern, route.method))
            self._buckets.setdefault((route.method, len(parsed)), []).append(route)
            logger.debug("registered route %s %s", route.method.value, pattern)
        return routes

    def lookup(self, method: HTTPMethod, segments: Sequence[str]) -> RouteMatch:
        """Return the first route, in registration order, matching the request.

        Raises RouteNotFoundError if no candidate matches.
        """
        for route in self._buckets.get((method, len(segments)), ()):
            params = route.pattern.match(segments, route.validators)
            if params is not None:
                return RouteMatch(route=route, params=params)
        raise RouteNotFoundError(method.value, "/" + "/".join(segments))

    def format_routes(self) -> str:
        """Format registered routes as a column-aligned list.

            GET      /api/user        list_users
            GET      /api/user/{id}   get_user      [require_auth > load_user]
            DELETE   /api/user/{id}   delete_user   [require_auth]

        Routes appear in registration order, which is also match priority.
        """
        if not self._routes:
            return ""
        rows = [
            (
                r.method.value,
                r.url,
                _qualname(r.handler),
                [_qualname(m) for m in r.middleware],
            )
            for r in self._routes
        ]
        method_w = max(len(r[0]) for r in rows)
        path_w = max(len(r[1]) for r in rows)
        handler_w = max(len(r[2]) for r in rows)

        lines: list[str] = []
        for method, path, handler, mw in rows:
            if mw:
                lines.append(
                    f"{method:<{method_w}}   {path:<{path_w}}   "
                    f"{handler:<{handler_w}}   [{' > '.join(mw)}]"
                )
            else:
                lines.append(f"{method:<{method_w}}   {path:<{path_w}}   {handler}")
        return "\n".join(line.rstrip() for line in lines)


def _methods(
    method: str | HTTPMethod | Iterable[str | HTTPMethod],
) -> list[HTTPMethod]:
    candidates = [method] if isinstance(method, str | HTTPMethod) else list(method)
    try:
        methods = [
            HTTPMethod.parse(m.upper() if isinstance(m, str) else m)
            for m in candidates
        ]
    except MethodNotAllowedError as e:
        msg = f"cannot register route for unknown method {e.method!r}"
        raise ValueError(msg) from e
    if not methods:
        msg = "at least one method is required"
        raise ValueError(msg)
    return methods


def _qualname(obj: object) -> str:
    """Extract __qualname__ from a callable, falling back to repr."""
    return str(obj.__qualname__) if hasattr(obj, "__qualname__") else repr(obj)
