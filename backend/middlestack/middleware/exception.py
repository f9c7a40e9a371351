"""
Middlestack — Exception-to-Response Translator
===============================================

What:  Converts any failure raised further down the stack into a 500 response.
When:  Outermost application-level stage, so failures of every other stage
       are caught too.

Response shape:

    status 500, encode=True
    body   [["exception", {}]]                                 include_data off
           [["exception", {"message": "...",
                           "ex_data": {...} | None,
                           "stack_trace": "Traceback ..."}]]   include_data on

``ex_data`` is the ``context`` dict carried by MiddlestackError subclasses.
Values that cannot be encoded as JSON are replaced by their ``repr``; a
``context`` attribute that is not a mapping is ignored.

Breadth:
    Every ``Exception`` is translated. ``MemoryError`` is re-raised, and
    BaseException subclasses outside ``Exception`` (KeyboardInterrupt,
    SystemExit) are never caught, so process-level failures still terminate
    the process.

Security: the full traceback is always logged server-side; it only reaches
the client when ``include_data`` is enabled.
"""

import logging
import traceback
from typing import Any, Dict, Mapping, Optional

from fastapi.encoders import jsonable_encoder

from middlestack.config import FormatExceptionOptions
from middlestack.http.handler import Raise, Respond, once
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)


def is_fatal(exc: BaseException) -> bool:
    return isinstance(exc, MemoryError) or not isinstance(exc, Exception)


def _encodable(value: Any) -> Any:
    try:
        return jsonable_encoder(value)
    except (TypeError, ValueError):
        return repr(value)


def exception_data(exc: BaseException) -> Optional[Dict[str, Any]]:
    """The error's ``context`` as JSON-ready data; None unless it is a non-empty mapping."""
    context = getattr(exc, "context", None)
    if not isinstance(context, Mapping) or not context:
        return None
    return {str(key): _encodable(value) for key, value in context.items()}


def exception_payload(exc: BaseException) -> Dict[str, Any]:
    return {
        "message": str(exc),
        "ex_data": exception_data(exc),
        "stack_trace": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


def exception_response(exc: BaseException, include_data: bool = False) -> Response:
    payload = exception_payload(exc) if include_data else {}
    return Response(status=500, body=[["exception", payload]], encode=True)


class FormatExceptionStage(Stage):
    name = "format_exception"
    options_model = FormatExceptionOptions

    def _translate(self, request: Request, exc: BaseException) -> Response:
        logger.error(
            "[%s] Unhandled error in %s %s: %s",
            request.get("request_id", ""),
            request.method,
            request.path,
            str(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return exception_response(exc, self.options.include_data)

    def __call__(self, request: Request) -> Optional[Response]:
        try:
            return self.handler(request)
        except MemoryError:
            raise
        except Exception as exc:
            return self._translate(request, exc)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        respond, raise_ = once(respond, raise_, name=self.name)

        def on_raise(exc: BaseException) -> None:
            if is_fatal(exc):
                raise_(exc)
            else:
                respond(self._translate(request, exc))

        try:
            self.handler.call_async(request, respond, on_raise)
        except MemoryError:
            raise
        except Exception as exc:
            on_raise(exc)
