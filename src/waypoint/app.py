"""RSGI application serving a Dispatcher.

Run it with granian::

    dispatcher = Dispatcher()
    dispatcher.get("/api/user/{id}", get_user, validators={"id": r"\\d+"})
    server = Server(App(dispatcher), address="127.0.0.1", port=8000)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from waypoint.dispatcher import Dispatch
    from waypoint.rsgi import (
        HTTPProtocol,
        HTTPScope,
        WebsocketProtocol,
        WebsocketScope,
    )

logger = logging.getLogger(__name__)

_WS_POLICY_VIOLATION = 1008


class App:
    """Adapts a dispatch callable to the RSGI interface.

    The request body is read in full before dispatching. With
    ``threaded=True`` (the default) each dispatch runs on a worker thread so
    blocking handlers do not stall the event loop; requests then run
    concurrently, each pipeline still strictly sequential.
    """

    __slots__ = ("_dispatch", "_threaded")

    def __init__(self, dispatch: Dispatch, *, threaded: bool = True) -> None:
        self._dispatch = dispatch
        self._threaded = threaded

    async def __call__(
        self,
        scope: HTTPScope | WebsocketScope,
        proto: HTTPProtocol | WebsocketProtocol,
    ) -> None:
        await self.__rsgi__(scope, proto)

    async def __rsgi__(
        self,
        scope: HTTPScope | WebsocketScope,
        proto: HTTPProtocol | WebsocketProtocol,
    ) -> None:
        if scope.proto != "http":
            logger.debug("refusing websocket connection to %s", scope.path)
            cast("WebsocketProtocol", proto).close(_WS_POLICY_VIOLATION)
            return

        scope = cast("HTTPScope", scope)
        proto = cast("HTTPProtocol", proto)
        body = await proto()
        headers = list(scope.headers.items())
        if self._threaded:
            response = await asyncio.to_thread(
                self._dispatch, scope.method, scope.path, headers, body
            )
        else:
            response = self._dispatch(scope.method, scope.path, headers, body)

        if response.body:
            proto.response_bytes(response.status, response.headers, response.body)
        else:
            proto.response_empty(response.status, response.headers)
