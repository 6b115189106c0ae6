from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode

from waypoint import Dispatcher, Fail, RequestContext, Response
from waypoint.otel import otel


@pytest.fixture
def exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def provider(exporter: InMemorySpanExporter) -> TracerProvider:
    tp = TracerProvider()
    tp.add_span_processor(SimpleSpanProcessor(exporter))
    return tp


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader: InMemoryMetricReader) -> MeterProvider:
    return MeterProvider(metric_readers=[metric_reader])


@pytest.fixture
def dispatcher() -> Dispatcher:
    def hello(ctx: RequestContext) -> str:
        return "hello"

    def get_post(ctx: RequestContext) -> dict[str, str]:
        return dict(ctx.route_params)

    def teapot(ctx: RequestContext) -> Fail:
        return Fail(418)

    def broken(ctx: RequestContext) -> None:
        msg = "boom"
        raise RuntimeError(msg)

    d = Dispatcher()
    d.get("/hello", hello)
    d.get("/user/{id}/post/{post_id}", get_post)
    d.get("/teapot", teapot)
    d.get("/broken", broken)
    return d


# --- Basic span creation ---


def test_basic_span(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    response = dispatch("GET", "/hello")

    assert response.status == 200
    spans = exporter.get_finished_spans()
    assert len(spans) == 1
    span = spans[0]
    assert span.name == "GET /hello"
    assert span.kind == SpanKind.SERVER
    assert span.attributes is not None
    assert span.attributes["http.request.method"] == "GET"
    assert span.attributes["url.path"] == "/hello"
    assert span.attributes["http.response.status_code"] == 200
    assert span.attributes["http.route"] == "/hello"


def test_span_name_with_route_pattern(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    dispatch("GET", "/user/42/post/99")

    spans = exporter.get_finished_spans()
    assert spans[0].name == "GET /user/{id}/post/{post_id}"
    assert spans[0].attributes is not None
    assert spans[0].attributes["http.route"] == "/user/{id}/post/{post_id}"
    assert spans[0].attributes["url.path"] == "/user/42/post/99"
    assert spans[0].attributes["http.route.param.id"] == "42"
    assert spans[0].attributes["http.route.param.post_id"] == "99"


def test_span_name_without_route(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    dispatch("GET", "/missing")

    spans = exporter.get_finished_spans()
    assert spans[0].name == "GET 404"
    assert spans[0].attributes is not None
    assert "http.route" not in spans[0].attributes


def test_unknown_method_span(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    dispatch("BREW", "/hello")

    spans = exporter.get_finished_spans()
    assert spans[0].name == "BREW 405"
    assert spans[0].attributes is not None
    assert spans[0].attributes["http.response.status_code"] == 405


# --- Status code handling ---


def test_5xx_sets_error_status(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    response = dispatch("GET", "/broken")

    assert response.status == 500
    spans = exporter.get_finished_spans()
    assert spans[0].name == "GET /broken"
    assert spans[0].status.status_code == StatusCode.ERROR


def test_4xx_does_not_set_error(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    dispatch("GET", "/teapot")

    spans = exporter.get_finished_spans()
    assert spans[0].attributes is not None
    assert spans[0].attributes["http.response.status_code"] == 418
    assert spans[0].status.status_code == StatusCode.UNSET


# --- Exception handling ---


def test_exception_records_and_raises(
    provider: TracerProvider, exporter: InMemorySpanExporter
) -> None:
    def failing_dispatch(
        method: str, path: str, headers: Any = None, body: Any = None
    ) -> Response:
        msg = "boom"
        raise RuntimeError(msg)

    dispatch = otel(tracer_provider=provider)(failing_dispatch)

    with pytest.raises(RuntimeError, match="boom"):
        dispatch("GET", "/")

    spans = exporter.get_finished_spans()
    assert spans[0].name == "GET"
    assert spans[0].status.status_code == StatusCode.ERROR
    exception_event = next(e for e in spans[0].events if e.name == "exception")
    assert exception_event.attributes is not None
    assert exception_event.attributes["exception.type"] == "RuntimeError"


# --- Attributes ---


def test_user_agent_and_headers_passed_through(
    provider: TracerProvider, exporter: InMemorySpanExporter
) -> None:
    seen: dict[str, str] = {}

    def echo_agent(ctx: RequestContext) -> None:
        seen["agent"] = ctx.request_headers["user-agent"]

    d = Dispatcher()
    d.post("/search", echo_agent)
    dispatch = otel(tracer_provider=provider)(d)

    response = dispatch("POST", "/search", {"User-Agent": "test-agent/1.0"})

    assert response.status == 200
    assert seen == {"agent": "test-agent/1.0"}
    attrs = exporter.get_finished_spans()[0].attributes
    assert attrs is not None
    assert attrs["user_agent.original"] == "test-agent/1.0"


# --- Distributed tracing ---


def test_distributed_tracing_propagation(
    provider: TracerProvider, exporter: InMemorySpanExporter, dispatcher: Dispatcher
) -> None:
    dispatch = otel(tracer_provider=provider)(dispatcher)

    trace_id = "0af7651916cd43dd8448eb211c80319c"
    parent_span_id = "b7ad6b7169203331"
    dispatch(
        "GET",
        "/hello",
        [("traceparent", f"00-{trace_id}-{parent_span_id}-01")],
    )

    spans = exporter.get_finished_spans()
    assert len(spans) == 1
    span = spans[0]
    assert span.context is not None
    assert f"{span.context.trace_id:032x}" == trace_id
    assert span.parent is not None
    assert f"{span.parent.span_id:016x}" == parent_span_id


# --- Metrics ---


def _get_metric(metric_reader: InMemoryMetricReader, name: str) -> Any:
    """Extract a metric by name from the reader."""
    data = metric_reader.get_metrics_data()
    assert data is not None
    for resource_metric in data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            for metric in scope_metric.metrics:
                if metric.name == name:
                    return metric
    msg = f"Metric {name!r} not found"
    raise AssertionError(msg)


def test_request_duration_recorded(
    provider: TracerProvider,
    meter_provider: MeterProvider,
    metric_reader: InMemoryMetricReader,
    dispatcher: Dispatcher,
) -> None:
    dispatch = otel(tracer_provider=provider, meter_provider=meter_provider)(
        dispatcher
    )

    dispatch("GET", "/user/1/post/2")

    metric = _get_metric(metric_reader, "http.server.request.duration")
    assert metric.unit == "s"
    (point,) = metric.data.data_points
    assert point.count == 1
    assert point.attributes["http.request.method"] == "GET"
    assert point.attributes["http.response.status_code"] == 200
    assert point.attributes["http.route"] == "/user/{id}/post/{post_id}"


def test_active_requests_returns_to_zero(
    provider: TracerProvider,
    meter_provider: MeterProvider,
    metric_reader: InMemoryMetricReader,
    dispatcher: Dispatcher,
) -> None:
    dispatch = otel(tracer_provider=provider, meter_provider=meter_provider)(
        dispatcher
    )

    dispatch("GET", "/hello")
    dispatch("GET", "/missing")

    metric = _get_metric(metric_reader, "http.server.active_requests")
    assert metric.unit == "{request}"
    (point,) = metric.data.data_points
    assert point.value == 0
