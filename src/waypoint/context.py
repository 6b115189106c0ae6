"""Per-request state shared by middleware and the handler."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl

from waypoint.pattern import split_path
from waypoint.types import Body, HTTPMethod

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class Headers(Mapping[str, str]):
    """Read-only request headers with case-insensitive lookup."""

    __slots__ = ("_items",)

    def __init__(
        self, headers: Mapping[str, str] | Iterable[tuple[str, str]] = ()
    ) -> None:
        items = headers.items() if isinstance(headers, Mapping) else headers
        self._items: dict[str, tuple[str, str]] = {k.lower(): (k, v) for k, v in items}

    def __getitem__(self, key: str) -> str:
        return self._items[key.lower()][1]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"


@dataclass(slots=True)
class RequestContext:
    """Mutable bag carried through one request.

    Created fresh by the Dispatcher for every request and discarded once the
    response is written. Middleware and the handler communicate only through
    it: they may add response headers, override the response status, and
    read route, body and header values.
    """

    method: HTTPMethod
    request_path: str
    request_headers: Headers = field(default_factory=Headers)
    body_params: dict[str, str] = field(default_factory=dict)
    route_params: dict[str, str] = field(default_factory=dict)
    response_headers: dict[str, str] = field(default_factory=dict)
    response_status: int | None = None
    route_url: str | None = None
    path_segments: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        self.path_segments = split_path(self.request_path)

    @classmethod
    def build(
        cls,
        method: HTTPMethod,
        path: str,
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: Body = None,
    ) -> RequestContext:
        request_headers = Headers(headers or ())
        return cls(
            method=method,
            request_path=path,
            request_headers=request_headers,
            body_params=parse_body(body, request_headers.get("content-type", "")),
        )

    def set_header(self, key: str, value: str) -> None:
        """Add a response header, replacing any existing one with the same name."""
        for existing in [k for k in self.response_headers if k.lower() == key.lower()]:
            del self.response_headers[existing]
        self.response_headers[key] = value


def parse_body(body: Body, content_type: str = "") -> dict[str, str]:
    """Best-effort parse of a request body into string key/value pairs.

    JSON objects keep string values as they are and JSON-encode the rest.
    Form-encoded bodies are parsed when the content type says so. Absent,
    unreadable or malformed bodies give an empty mapping.
    """
    if body is None:
        return {}
    if not isinstance(body, bytes | str):
        try:
            body = body.read()
        except Exception:
            logger.debug("request body could not be read", exc_info=True)
            return {}
    if not body:
        return {}

    if content_type.split(";", 1)[0].strip().lower() == _FORM_CONTENT_TYPE:
        text = body.decode("utf-8", "replace") if isinstance(body, bytes) else body
        return dict(parse_qsl(text, keep_blank_values=True))

    try:
        payload = json.loads(body)
        if not isinstance(payload, dict):
            return {}
        return {
            str(k): v if isinstance(v, str) else json.dumps(v)
            for k, v in payload.items()
        }
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError):
        logger.debug("request body is not valid JSON, ignoring it")
        return {}
