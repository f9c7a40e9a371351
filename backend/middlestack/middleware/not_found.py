"""
Middlestack — Not-Found Normalizer
===================================

What:  Substitutes a fallback handler's result when the inner handler
       produces no response.
How:   Two entry points, one per calling convention:

    direct        response = inner(request)
                  return response if response is not None else error_handler(request)

    continuation  inner.call_async(request, respond', raise_)
                  where respond'(None) runs error_handler on the same request
                  and delivers its result instead

Exactly one of (inner result, fallback result) reaches the caller. The
default error handler returns None, so absence stays absence.
"""

import logging
from typing import Any, Optional

from middlestack.config import NotFoundOptions
from middlestack.http.handler import Handler, Raise, Respond, as_handler, once
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)


class NotFoundStage(Stage):
    name = "not_found"
    options_model = NotFoundOptions

    def __init__(self, handler, options: Any = None):
        super().__init__(handler, options)
        error_handler = self.options.error_handler
        self.error_handler: Optional[Handler] = (
            as_handler(error_handler) if error_handler is not None else None
        )

    @classmethod
    def parse_options(cls, options: Any) -> Any:
        # A bare handler is shorthand for {"error_handler": handler}
        if callable(options) and not isinstance(options, NotFoundOptions):
            return NotFoundOptions(error_handler=options)
        return super().parse_options(options)

    def __call__(self, request: Request) -> Optional[Response]:
        response = self.handler(request)
        if response is not None or self.error_handler is None:
            return response
        logger.debug("No response for %s %s; using error handler", request.method, request.path)
        return self.error_handler(request)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        respond, raise_ = once(respond, raise_, name=self.name)

        def on_respond(response: Optional[Response]) -> None:
            if response is not None or self.error_handler is None:
                respond(response)
                return
            logger.debug("No response for %s %s; using error handler", request.method, request.path)
            try:
                self.error_handler.call_async(request, respond, raise_)
            except Exception as exc:
                raise_(exc)

        self.handler.call_async(request, on_respond, raise_)
