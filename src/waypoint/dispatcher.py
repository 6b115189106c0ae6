"""Request dispatcher: method check, preflight, middleware, routing, output.

Inspired by go-chi/mux's Mux, with the middleware model of a pre-handler
chain over a shared request context.

A Dispatcher owns its route table, global middleware and global headers.
Populate it during startup, then serve: the first dispatched request (or an
explicit ``freeze()``) ends registration, and later registration raises
RuntimeError. Registering routes while requests are being served is not
supported.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from waypoint.chain import run_chain
from waypoint.config import Config
from waypoint.context import RequestContext
from waypoint.errors import MethodNotAllowedError, RouteNotFoundError
from waypoint.result import Fail, unwrap_output
from waypoint.table import Route, RouteTable
from waypoint.types import Body, Handler, HTTPMethod, Middleware

logger = logging.getLogger(__name__)

type Dispatch = Callable[
    [str, str, Mapping[str, str] | Iterable[tuple[str, str]] | None, Body], Response
]


@dataclass(slots=True)
class Response:
    """What the transport writes back: status, headers and body bytes.

    ``route`` is the matched route template ("" when nothing matched) and
    ``route_params`` its bound variables, for logging and tracing.
    """

    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    route: str = ""
    route_params: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        name = name.lower()
        for k, v in self.headers:
            if k.lower() == name:
                return v
        return None

    def set_header(self, name: str, value: str) -> None:
        lowered = name.lower()
        self.headers = [(k, v) for k, v in self.headers if k.lower() != lowered]
        self.headers.append((name, value))


class Dispatcher:
    __slots__ = (
        "_frozen",
        "_global_headers",
        "_global_middleware",
        "config",
        "table",
    )
    table: RouteTable
    config: Config
    _global_middleware: list[Middleware]
    _global_headers: list[tuple[str, str]]
    _frozen: bool

    def __init__(
        self, config: Config | None = None, *, table: RouteTable | None = None
    ) -> None:
        self.config = config if config is not None else Config()
        self.config.validate()
        self.table = table if table is not None else RouteTable()
        self._global_middleware = []
        self._global_headers = []
        self._frozen = False

    def __call__(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: Body = None,
    ) -> Response:
        return self.handle_request(method, path, headers, body)

    # --- registration ---------------------------------------------------------
    def freeze(self) -> None:
        """End the registration phase. Idempotent."""
        if not self._frozen:
            self._frozen = True
            logger.debug("dispatcher frozen with %d routes", len(self.table))

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = "dispatcher is already serving requests, register before serving"
            raise RuntimeError(msg)

    def register_route(
        self,
        pattern: str,
        method: str | HTTPMethod | Iterable[str | HTTPMethod],
        handler: Handler,
        validators: Mapping[str, str | re.Pattern[str]] | None = None,
        middleware: Sequence[Middleware] = (),
    ) -> list[Route]:
        """Registers handler at pattern for method(s), with optional validators
        and route middleware. Raises DuplicateRouteError."""
        self._check_not_frozen()
        return self.table.register(pattern, method, handler, validators, middleware)

    def route(
        self,
        pattern: str,
        method: str | HTTPMethod | Iterable[str | HTTPMethod] = HTTPMethod.GET,
        validators: Mapping[str, str | re.Pattern[str]] | None = None,
        middleware: Sequence[Middleware] = (),
    ) -> Callable[[Handler], Handler]:
        """Decorator form of register_route."""

        def decorator(handler: Handler) -> Handler:
            self.register_route(pattern, method, handler, validators, middleware)
            return handler

        return decorator

    def connect(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for CONNECT."""
        self.register_route(pattern, HTTPMethod.CONNECT, handler, **kwargs)

    def delete(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for DELETE."""
        self.register_route(pattern, HTTPMethod.DELETE, handler, **kwargs)

    def get(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for GET."""
        self.register_route(pattern, HTTPMethod.GET, handler, **kwargs)

    def head(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for HEAD."""
        self.register_route(pattern, HTTPMethod.HEAD, handler, **kwargs)

    def options(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for OPTIONS.

        Only reachable when auto_handle_preflight is disabled.
        """
        self.register_route(pattern, HTTPMethod.OPTIONS, handler, **kwargs)

    def patch(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for PATCH."""
        self.register_route(pattern, HTTPMethod.PATCH, handler, **kwargs)

    def post(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for POST."""
        self.register_route(pattern, HTTPMethod.POST, handler, **kwargs)

    def put(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for PUT."""
        self.register_route(pattern, HTTPMethod.PUT, handler, **kwargs)

    def trace(self, pattern: str, handler: Handler, **kwargs: Any) -> None:
        """Registers handler at pattern for TRACE."""
        self.register_route(pattern, HTTPMethod.TRACE, handler, **kwargs)

    def add_global_header(self, key: str, value: str) -> None:
        """Adds a header sent with every response past the method check."""
        self._check_not_frozen()
        self._global_headers.append((key, value))

    def add_global_middleware(self, middleware: Middleware) -> None:
        """Adds middleware run for every routed request, before route lookup."""
        self._check_not_frozen()
        self._global_middleware.append(middleware)

    def use(self, *middleware: Middleware) -> None:
        """Adds global middleware, in order."""
        for mw in middleware:
            self.add_global_middleware(mw)

    # --- dispatch -------------------------------------------------------------
    def handle_request(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: Body = None,
    ) -> Response:
        """Run one request through the pipeline and return the response.

        Never raises for per-request errors: unknown methods give 405,
        unmatched paths 404, a returned Fail its own status, and any
        exception from middleware or the handler a bodyless 500.
        """
        self.freeze()
        try:
            http_method = HTTPMethod.parse(method)
        except MethodNotAllowedError:
            logger.debug("method not allowed: %s %s", method, path)
            return Response(status=405)

        response = Response(status=200, headers=list(self._global_headers))
        if self.config.auto_add_allow_origin:
            response.headers.append(
                ("Access-Control-Allow-Origin", self.config.allow_origin)
            )

        if self.config.auto_handle_preflight and http_method is HTTPMethod.OPTIONS:
            return self._preflight(response)

        ctx = RequestContext.build(http_method, path, headers, body)

        failed = self._run_middleware(self._global_middleware, ctx, response)
        if failed is not None:
            return failed

        try:
            match = self.table.lookup(http_method, ctx.path_segments)
        except RouteNotFoundError:
            logger.debug("no route for %s %s", http_method.value, path)
            response.status = 404
            return response

        route = match.route
        ctx.route_params.update(match.params)
        ctx.route_url = route.url
        response.route = route.url
        response.route_params = match.params

        failed = self._run_middleware(route.middleware, ctx, response)
        if failed is not None:
            return failed

        response.status = 200
        try:
            result = unwrap_output(route.handler(ctx))
        except Exception:
            logger.exception("handler failed for %s %s", http_method.value, route.url)
            return self._unclassified(response)
        if isinstance(result, Fail):
            return self._fail(result, response)

        for key, value in ctx.response_headers.items():
            response.set_header(key, value)
        if ctx.response_status is not None:
            response.status = ctx.response_status
        try:
            self._write_output(response, result.value)
        except Exception:
            logger.exception("could not serialize output of %s", route.url)
            return self._unclassified(response)
        return response

    def _preflight(self, response: Response) -> Response:
        cfg = self.config
        if not cfg.auto_add_allow_origin:
            response.headers.append(("Access-Control-Allow-Origin", cfg.allow_origin))
        response.headers.extend(
            [
                ("Access-Control-Max-Age", str(cfg.preflight_max_age_seconds)),
                ("Access-Control-Allow-Headers", ", ".join(cfg.allowed_headers)),
                (
                    "Access-Control-Allow-Methods",
                    ", ".join(m.value for m in cfg.allowed_methods),
                ),
            ]
        )
        return response

    def _run_middleware(
        self,
        middleware: Sequence[Middleware],
        ctx: RequestContext,
        response: Response,
    ) -> Response | None:
        """Run a middleware chain, returning the abort response if it stopped."""
        if not middleware:
            return None
        try:
            failure = run_chain(middleware, ctx)
        except Exception:
            logger.exception(
                "middleware failed for %s %s", ctx.method.value, ctx.request_path
            )
            return self._unclassified(response)
        if failure is not None:
            return self._fail(failure, response)
        return None

    def _fail(self, failure: Fail, response: Response) -> Response:
        logger.info("request aborted with status %d", failure.status_code)
        response.status = failure.status_code
        for key, value in failure.headers:
            response.set_header(key, value)
        try:
            self._write_output(response, failure.output)
        except Exception:
            logger.exception("could not serialize failure output")
            return self._unclassified(response)
        return response

    def _unclassified(self, response: Response) -> Response:
        response.status = 500
        response.body = b""
        response.headers = [
            (k, v) for k, v in response.headers if k.lower() != "content-type"
        ]
        return response

    def _write_output(self, response: Response, output: object) -> None:
        """Serialize output into the response body according to config.

        None writes nothing. With JSON serialization off, str and bytes are
        written as they are and other values leave the body empty.
        """
        if output is None:
            return
        if self.config.serialize_output_as_json:
            body = json.dumps(output).encode("utf-8")
        elif isinstance(output, str):
            body = output.encode("utf-8")
        elif isinstance(output, bytes):
            body = output
        else:
            logger.warning(
                "output of type %s dropped: JSON serialization is disabled",
                type(output).__name__,
            )
            body = b""
        response.set_header("Content-Type", self.config.default_content_type)
        response.body = body
