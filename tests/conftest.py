from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from waypoint.rsgi import HTTPScope


@dataclass
class MockHTTPScope:
    proto: Literal["http"] = "http"
    http_version: Literal["1", "1.1", "2"] = "1.1"
    rsgi_version: str = "1.0"
    server: str = "localhost"
    client: str = "127.0.0.1"
    scheme: str = "http"
    method: str = "GET"
    path: str = "/"
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    authority: str | None = None


@dataclass
class MockWebsocketScope:
    proto: Literal["ws"] = "ws"
    path: str = "/"


class MockHTTPProtocol:
    """Mock protocol that serves a fixed body and captures the response."""

    def __init__(self, body: bytes = b"") -> None:
        self.body = body
        self.response_status: int | None = None
        self.response_headers: list[tuple[str, str]] | None = None
        self.response_body: bytes | None = None

    async def __call__(self) -> bytes:
        return self.body

    def response_empty(self, status: int, headers: list[tuple[str, str]]) -> None:
        self.response_status = status
        self.response_headers = headers
        self.response_body = b""

    def response_str(
        self, status: int, headers: list[tuple[str, str]], body: str
    ) -> None:
        self.response_status = status
        self.response_headers = headers
        self.response_body = body.encode("utf-8")

    def response_bytes(
        self, status: int, headers: list[tuple[str, str]], body: bytes
    ) -> None:
        self.response_status = status
        self.response_headers = headers
        self.response_body = body


class MockWebsocketProtocol:
    def __init__(self) -> None:
        self.closed_with: int | None = None

    def close(self, status: int | None = None) -> tuple[int, bool]:
        self.closed_with = status
        return (status or 1000, True)


def mock_scope(
    path: str = "/",
    method: str = "GET",
    headers: dict[str, str] | None = None,
) -> HTTPScope:
    return MockHTTPScope(path=path, method=method, headers=headers or {})
