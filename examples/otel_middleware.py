# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "waypoint[otel,server]",
#     "httpx>=0.28.1,<0.29.0",
#     "opentelemetry-sdk>=1.39.1,<2.0.0",
# ]
#
# [tool.uv.sources]
# waypoint = { path = "../", editable = true }
# ///
"""OpenTelemetry tracing demo.

Shows usage of the otel wrapper with an in-memory exporter so traces can be
printed to the console without needing an external collector.
"""

import asyncio
import logging
import sys

import httpx
from granian.server.embed import Server
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from waypoint import App, Dispatcher, RequestContext
from waypoint.otel import otel

ADDRESS = "127.0.0.1"
PORT = 8000


# --- handlers ---
def hello(ctx: RequestContext) -> str:
    return "hello world"


def greet(ctx: RequestContext) -> str:
    return f"hello {ctx.route_params['name']}"


# --- app setup ---
exporter = InMemorySpanExporter()
provider = TracerProvider()
provider.add_span_processor(SimpleSpanProcessor(exporter))

dispatcher = Dispatcher()
dispatcher.get("/", hello)
dispatcher.get("/greet/{name}", greet)

# 404 and 405 responses are traced too, named "METHOD STATUS"
app = App(otel(tracer_provider=provider)(dispatcher))


# --- run ---
async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    task = asyncio.create_task(serve())
    await asyncio.sleep(0.1)
    await requests()
    provider.shutdown()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def serve() -> None:
    server = Server(app, address=ADDRESS, port=PORT, log_access=True)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await server.shutdown()


async def requests() -> None:
    base_url = f"http://{ADDRESS}:{PORT}"

    async with httpx.AsyncClient(base_url=base_url) as client:
        print("--- GET / ---", file=sys.stderr)
        await client.get("/")

        print("--- GET /greet/world ---", file=sys.stderr)
        await client.get("/greet/world")

        print("--- GET /nonexistent ---", file=sys.stderr)
        await client.get("/nonexistent")

        print("--- BREW / (method not allowed) ---", file=sys.stderr)
        await client.request("BREW", "/")

    print("--- Collected spans ---", file=sys.stderr)
    for span in exporter.get_finished_spans():
        attrs = span.attributes or {}
        print(
            f"  {span.name:<30} "
            f"status={attrs['http.response.status_code']:<4} "
            f"route={attrs.get('http.route', ''):<20} "  # not set on 404/405
            f"path={attrs['url.path']}",
            file=sys.stderr,
        )


if __name__ == "__main__":
    asyncio.run(main())
