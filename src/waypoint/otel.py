"""OpenTelemetry tracing and metrics for dispatched requests.

Creates HTTP server spans and metrics with semantic conventions for each
request that passes through a dispatch callable.

Install with: uv add "waypoint[otel]"
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from waypoint.dispatcher import Dispatch, Response
    from waypoint.types import Body

try:
    from opentelemetry import metrics, trace
    from opentelemetry.propagate import extract
    from opentelemetry.trace import (
        SpanKind,
        StatusCode,
        TracerProvider,
    )
except ImportError as e:
    msg = (
        "OpenTelemetry instrumentation requires the 'otel' extra. "
        "Install with: uv add 'waypoint[otel]'"
    )
    raise ImportError(msg) from e


_DURATION_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.075,
    0.1,
    0.25,
    0.5,
    0.75,
    1.0,
    2.5,
    5.0,
    7.5,
    10.0,
)


def otel(
    *,
    tracer_provider: TracerProvider | None = None,
    meter_provider: metrics.MeterProvider | None = None,
) -> Callable[[Dispatch], Dispatch]:
    """Create OpenTelemetry tracing and metrics instrumentation.

    Wraps a dispatch callable (usually a Dispatcher) so every request gets a
    server span named ``METHOD /route`` (``METHOD STATUS`` when no route
    matched) and feeds the request metrics.

    Extracts trace context from incoming request headers (e.g. ``traceparent``)
    for distributed tracing. Only depends on ``opentelemetry-api``; users bring
    their own SDK and exporters.

    Metrics emitted:
        - ``http.server.request.duration`` (histogram, seconds)
        - ``http.server.active_requests`` (up-down counter)

    Args:
        tracer_provider: Optional TracerProvider. If None, uses the global provider.
        meter_provider: Optional MeterProvider. If None, uses the global provider.

    Returns:
        Function that wraps a dispatch callable with tracing and metrics.

    Example:
        app = App(otel()(dispatcher))
    """
    tracer = trace.get_tracer(
        "waypoint",
        tracer_provider=tracer_provider,
    )
    meter = metrics.get_meter(
        "waypoint",
        meter_provider=meter_provider,
    )
    duration_histogram = meter.create_histogram(
        "http.server.request.duration",
        unit="s",
        description="Duration of HTTP server requests.",
        explicit_bucket_boundaries_advisory=_DURATION_BUCKETS,
    )
    active_requests_counter = meter.create_up_down_counter(
        "http.server.active_requests",
        unit="{request}",
        description="Number of active HTTP server requests.",
    )

    def instrument(dispatch: Dispatch) -> Dispatch:
        def traced_dispatch(
            method: str,
            path: str,
            headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
            body: Body = None,
        ) -> Response:
            pairs = list(
                headers.items() if isinstance(headers, Mapping) else headers or ()
            )
            carrier = {k.lower(): v for k, v in pairs}

            # Extract propagated context from request headers
            ctx = extract(carrier)

            attributes: dict[str, str | int] = {
                "http.request.method": method,
                "url.path": path,
            }
            user_agent = carrier.get("user-agent")
            if user_agent is not None:
                attributes["user_agent.original"] = user_agent
            active_attrs: dict[str, str | int] = {"http.request.method": method}

            active_requests_counter.add(1, active_attrs)
            start = time.perf_counter()

            # The route is only known once dispatch returns, so the span is
            # renamed afterwards.
            with tracer.start_as_current_span(
                method,
                context=ctx,
                kind=SpanKind.SERVER,
                attributes=attributes,
                record_exception=True,
                set_status_on_exception=True,
            ) as span:
                response = None
                try:
                    response = dispatch(method, path, pairs, body)
                    return response
                finally:
                    duration = time.perf_counter() - start
                    active_requests_counter.add(-1, active_attrs)
                    duration_attrs = dict(active_attrs)
                    if response is not None:
                        status = response.status
                        span.set_attribute("http.response.status_code", status)
                        duration_attrs["http.response.status_code"] = status
                        if response.route:
                            span.set_attribute("http.route", response.route)
                            span.update_name(f"{method} {response.route}")
                            duration_attrs["http.route"] = response.route
                        else:
                            span.update_name(f"{method} {status}")
                        # not part of semantic conventions but path params are useful
                        for key, value in response.route_params.items():
                            span.set_attribute(f"http.route.param.{key}", value)
                        if status >= 500:
                            span.set_status(StatusCode.ERROR)
                    duration_histogram.record(duration, duration_attrs)

        return traced_dispatch

    return instrument
