"""Request and Response values and the handler calling conventions."""

from middlestack.http.handler import (
    Handler,
    Raise,
    Respond,
    as_async_handler,
    as_handler,
    invoke_async,
    once,
)
from middlestack.http.request import Request
from middlestack.http.response import Response, resource_response, status_only

__all__ = [
    "Handler",
    "Raise",
    "Request",
    "Respond",
    "Response",
    "as_async_handler",
    "as_handler",
    "invoke_async",
    "once",
    "resource_response",
    "status_only",
]
