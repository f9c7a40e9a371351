"""
Middlestack — Static Resources
===============================

Serves files below a root directory (default ``public``) for GET and HEAD
requests before the inner handler runs. Paths that do not name an existing
file, or that escape the root, fall through to the inner handler.
"""

import asyncio
import logging
from typing import Optional

from middlestack.config import StaticOptions
from middlestack.http.handler import Raise, Respond
from middlestack.http.request import Request
from middlestack.http.response import (
    Response,
    resolve_resource,
    resource_response,
    resource_response_async,
)
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)


class StaticResourceStage(Stage):
    name = "static"
    options_model = StaticOptions

    def _servable(self, request: Request) -> bool:
        if request.method not in ("GET", "HEAD") or request.path.endswith("/"):
            return False
        return resolve_resource(request.path, self.options.resources) is not None

    def __call__(self, request: Request) -> Optional[Response]:
        if self._servable(request):
            response = resource_response(request.path, self.options.resources)
            if response is not None:
                return response
        return self.handler(request)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        if not self._servable(request):
            self.handler.call_async(request, respond, raise_)
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            response = resource_response(request.path, self.options.resources)
            if response is not None:
                respond(response)
            else:
                self.handler.call_async(request, respond, raise_)
            return

        task = asyncio.ensure_future(resource_response_async(request.path, self.options.resources))

        def fall_through() -> None:
            try:
                self.handler.call_async(request, respond, raise_)
            except Exception as exc:
                raise_(exc)

        def done(t: "asyncio.Future[Optional[Response]]") -> None:
            if t.cancelled() or t.exception() is not None:
                logger.warning("Static resource read failed for %s", request.path)
                fall_through()
            elif t.result() is not None:
                respond(t.result())
            else:
                fall_through()

        task.add_done_callback(done)
