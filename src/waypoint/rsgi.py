"""Structural types for the parts of RSGI the App uses.

Mirrors granian's ``granian.rsgi`` HTTP scope and protocol so the core does
not import granian; any object of the right shape (including test mocks)
can be passed in.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Literal, Protocol


class RSGIHeaders(Protocol):
    def items(self) -> Iterable[tuple[str, str]]: ...
    def get(self, key: str, default: Any = None) -> Any: ...


class HTTPScope(Protocol):
    @property
    def proto(self) -> Literal["http"]: ...
    @property
    def http_version(self) -> Literal["1", "1.1", "2"]: ...
    @property
    def rsgi_version(self) -> str: ...
    @property
    def server(self) -> str: ...
    @property
    def client(self) -> str: ...
    @property
    def scheme(self) -> str: ...
    @property
    def method(self) -> str: ...
    @property
    def path(self) -> str: ...
    @property
    def query_string(self) -> str: ...
    @property
    def headers(self) -> RSGIHeaders: ...
    @property
    def authority(self) -> str | None: ...


class HTTPProtocol(Protocol):
    async def __call__(self) -> bytes: ...
    def response_empty(self, status: int, headers: list[tuple[str, str]]) -> None: ...
    def response_str(
        self, status: int, headers: list[tuple[str, str]], body: str
    ) -> None: ...
    def response_bytes(
        self, status: int, headers: list[tuple[str, str]], body: bytes
    ) -> None: ...


class WebsocketScope(Protocol):
    @property
    def proto(self) -> Literal["ws"]: ...
    @property
    def path(self) -> str: ...


class WebsocketProtocol(Protocol):
    def close(self, status: int | None = None) -> tuple[int, bool]: ...
