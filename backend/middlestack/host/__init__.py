"""ASGI hosting: the pipeline application, access logging and the health route."""

from middlestack.host.access_log import AccessLogMiddleware, request_id_var
from middlestack.host.asgi import PipelineApp, build_request, to_starlette

__all__ = [
    "AccessLogMiddleware",
    "PipelineApp",
    "build_request",
    "request_id_var",
    "to_starlette",
]
