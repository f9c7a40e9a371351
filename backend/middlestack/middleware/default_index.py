"""
Middlestack — Fallback Content Responder
=========================================

What:  Serves an application shell (``public/index.html``) when nothing
       further down the stack produced a response.
Why:   Client-side routed front ends need their shell document for any
       browser navigation the server has no route for, while API clients
       should still get a plain status.

Decision table when the inner handler returns None:

    request content-type matches an ``exclude`` pattern → status_only(status)   (default 404)
    otherwise, index file found                         → 200 text/html <index>
    otherwise                                           → None (still absent)

``exclude`` entries are regular expressions searched in the content-type
header; the default ``["json"]`` catches application/json and the
vendor ``+json`` types.
"""

import asyncio
import logging
import re
from typing import List, Optional, Pattern

from middlestack.config import DefaultIndexOptions
from middlestack.http.handler import Raise, Respond, once
from middlestack.http.request import Request
from middlestack.http.response import (
    Response,
    resource_response,
    resource_response_async,
    status_only,
)
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)


def as_index(response: Optional[Response]) -> Optional[Response]:
    if response is None:
        return None
    return response.with_content_type("text/html").with_status(200)


class DefaultIndexStage(Stage):
    name = "default_index"
    options_model = DefaultIndexOptions

    def __init__(self, handler, options=None):
        super().__init__(handler, options)
        self.exclude: List[Pattern[str]] = [re.compile(p) for p in self.options.exclude]

    def is_excluded(self, request: Request) -> bool:
        content_type = str(request.header("content-type") or "")
        return any(pattern.search(content_type) for pattern in self.exclude)

    def _missing(self) -> None:
        logger.debug(
            "Fallback document %s not found under %s",
            self.options.index,
            self.options.root,
        )

    def fallback(self, request: Request) -> Optional[Response]:
        if self.is_excluded(request):
            return status_only(self.options.status)
        return self._index_sync()

    def __call__(self, request: Request) -> Optional[Response]:
        response = self.handler(request)
        if response is not None:
            return response
        return self.fallback(request)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        respond, raise_ = once(respond, raise_, name=self.name)

        def on_respond(response: Optional[Response]) -> None:
            if response is not None:
                respond(response)
            elif self.is_excluded(request):
                respond(status_only(self.options.status))
            else:
                self._load_index(respond, raise_)

        self.handler.call_async(request, on_respond, raise_)

    def _load_index(self, respond: Respond, raise_: Raise) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            respond(self._index_sync())
            return

        task = asyncio.ensure_future(
            resource_response_async(self.options.index, self.options.root)
        )

        def done(t: "asyncio.Future[Optional[Response]]") -> None:
            if t.cancelled():
                raise_(asyncio.CancelledError())
            elif t.exception() is not None:
                raise_(t.exception())
            else:
                response = as_index(t.result())
                if response is None:
                    self._missing()
                respond(response)

        task.add_done_callback(done)

    def _index_sync(self) -> Optional[Response]:
        response = as_index(resource_response(self.options.index, self.options.root))
        if response is None:
            self._missing()
        return response
