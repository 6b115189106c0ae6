"""Shared types: HTTP methods and callable signatures."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import IO, TYPE_CHECKING, Any

from waypoint.errors import MethodNotAllowedError

if TYPE_CHECKING:
    from waypoint.context import RequestContext
    from waypoint.result import Fail, Ok

type Body = bytes | str | IO[bytes] | None
type Handler = Callable[[RequestContext], Any]
type Middleware = Callable[[RequestContext], Ok[None] | Fail | None]


class HTTPMethod(Enum):
    """HTTP methods a route can be registered for.

    Methods from the following RFCs are all observed:

        * RFC 9110: HTTP Semantics, obsoletes 7231, which obsoleted 2616
        * RFC 5789: PATCH Method for HTTP
    """

    CONNECT = "CONNECT"  # Establish a connection to the server.
    DELETE = "DELETE"  # Remove the target.
    GET = "GET"  # Retrieve the target.
    HEAD = "HEAD"  # Same as GET, but only retrieve status line and header section.
    OPTIONS = "OPTIONS"  # Describe the communication options for the target.
    PATCH = "PATCH"  # Apply partial modifications to a target.
    POST = "POST"  # Perform target-specific processing with the request payload.
    PUT = "PUT"  # Replace the target with the request payload.
    TRACE = "TRACE"  # Perform a message loop-back test along the path to the target.

    def __repr__(self) -> str:
        return str(self.value)

    @classmethod
    def parse(cls, method: str | HTTPMethod) -> HTTPMethod:
        """Exact, case-sensitive lookup, raises MethodNotAllowedError when unknown."""
        if isinstance(method, HTTPMethod):
            return method
        try:
            return cls(method)
        except ValueError as e:
            raise MethodNotAllowedError(method) from e
