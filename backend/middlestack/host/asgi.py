"""
Middlestack — ASGI Binding
===========================

What:  Serves an assembled handler as an ASGI application.
How:   For each HTTP request:

    1. Decode the Starlette request into a middlestack Request
       (headers, cookies, query string, urlencoded/multipart forms, raw body)
    2. Run the handler
         mode="async"  continuation convention on the event loop
         mode="sync"   direct-return convention in Starlette's threadpool
    3. Encode the result into a Starlette Response
         None                → bare 404
         encode=True         → serialized by the format codec (JSON)
         str / bytes body    → sent as-is

The handler is usually attached after construction (``app.handler = ...``),
once the lifecycle has started the system. Until then every request gets 503.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, ImmutableMultiDict
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose

from middlestack.config import MiddlewareConfig, ParamsOptions, app_middleware_config
from middlestack.host.access_log import request_id_var
from middlestack.http.handler import Handler, invoke_async
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.format import encode_response

logger = logging.getLogger(__name__)

MultiValue = Union[Any, List[Any]]


def flatten(multi: ImmutableMultiDict) -> Dict[str, MultiValue]:
    """Collapse a multi-dict: single values stay scalars, repeated keys become lists."""
    flat: Dict[str, MultiValue] = {}
    for key, value in multi.multi_items():
        if key not in flat:
            flat[key] = value
        elif isinstance(flat[key], list):
            flat[key].append(value)
        else:
            flat[key] = [flat[key], value]
    return flat


def _params_options(config: MiddlewareConfig) -> Optional[ParamsOptions]:
    if config.params is False:
        return None
    if config.params is True:
        return ParamsOptions()
    return config.params


async def build_request(request: StarletteRequest, config: MiddlewareConfig) -> Request:
    """Decode a Starlette request into a middlestack Request."""
    headers = {key.lower(): value for key, value in request.headers.items()}
    content_type = headers.get("content-type", "")
    params_options = _params_options(config)

    query_params: Dict[str, MultiValue] = {}
    form_params: Dict[str, MultiValue] = {}
    multipart_params: Dict[str, MultiValue] = {}
    body: Optional[bytes] = None

    if params_options is not None:
        query_params = flatten(request.query_params)

    if params_options is not None and params_options.urlencoded and content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form: FormData = await request.form()
        form_params = flatten(form)
    elif params_options is not None and params_options.multipart and content_type.startswith(
        "multipart/form-data"
    ):
        form = await request.form()
        multipart_params = flatten(form)
    else:
        body = await request.body()

    data: Dict[str, Any] = {
        "method": request.method,
        "path": request.url.path,
        "query_string": request.url.query,
        "scheme": request.url.scheme,
        "remote_addr": request.client.host if request.client else None,
        "headers": headers,
        "body": body,
        "request_id": request_id_var.get(""),
    }
    if params_options is not None:
        data["query_params"] = query_params
        data["form_params"] = form_params
        data["multipart_params"] = multipart_params
        data["params"] = {**query_params, **form_params, **multipart_params}
    if config.cookies:
        data["cookies"] = dict(request.cookies)
    return Request(data)


def to_starlette(response: Optional[Response], request: Request) -> StarletteResponse:
    """Encode a middlestack Response (or its absence) for Starlette."""
    if response is None:
        return StarletteResponse(status_code=404)
    if response.encode or not (response.body is None or isinstance(response.body, (bytes, str))):
        response = encode_response(response.mark_encode(), request)

    body = response.body
    if body is None:
        content: Union[bytes, str] = b""
    else:
        content = body
    return StarletteResponse(
        content=content,
        status_code=response.status,
        headers=dict(response.headers),
    )


class PipelineApp:
    """ASGI application serving a middlestack handler."""

    def __init__(
        self,
        handler: Optional[Handler] = None,
        config: Optional[MiddlewareConfig] = None,
        mode: str = "async",
    ):
        if mode not in ("async", "sync"):
            raise ValueError(f"mode must be 'async' or 'sync', got {mode!r}")
        self.handler = handler
        self.config = config or app_middleware_config()
        self.mode = mode

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await WebSocketClose()(scope, receive, send)
            return
        if scope["type"] != "http":
            return

        starlette_request = StarletteRequest(scope, receive)
        if self.handler is None:
            logger.error("Request %s received before the pipeline started", starlette_request.url.path)
            await StarletteResponse(status_code=503)(scope, receive, send)
            return

        request = await build_request(starlette_request, self.config)
        response = await self.run(request)
        await to_starlette(response, request)(scope, receive, send)

    async def run(self, request: Request) -> Optional[Response]:
        if self.mode == "sync":
            return await run_in_threadpool(self.handler, request)
        return await invoke_async(self.handler, request)
