"""
Middlestack — Format (Codec) Stage
===================================

What:  Decodes JSON request bodies into ``body_params`` and serializes
       responses marked ``encode=True``.
When:  Outermost route-level stage. The encode marker is set further in,
       by EncodeResponseStage; anything still marked when it reaches the
       host (e.g. the 500 from the exception translator) is serialized there
       with ``encode_response`` as well.

Negotiation:
    JSON is the only wire format. A missing or wildcard Accept header, or
    one naming application/json or a ``+json`` type, gets JSON; any other
    Accept header still gets JSON, the default format.

Serialization goes through FastAPI's ``jsonable_encoder`` (pydantic models,
datetimes, UUIDs, ...) and Starlette's ``JSONResponse`` rendering.
"""

import json
import logging
import re
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse

from middlestack.exceptions import DecodeError
from middlestack.http.handler import Raise, Respond
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
JSON_CONTENT_TYPE = re.compile(r"^application/([\w.+-]+\+)?json\b", re.IGNORECASE)


def is_json(content_type: Optional[str]) -> bool:
    return bool(JSON_CONTENT_TYPE.match((content_type or "").strip()))


def negotiate(accept: Optional[str]) -> str:
    """Pick the response media type for an Accept header."""
    for part in (accept or "*/*").split(","):
        media = part.split(";")[0].strip().lower()
        if media in ("*/*", "application/*") or is_json(media):
            return JSON_MEDIA_TYPE
    logger.debug("No acceptable format in %r; using %s", accept, JSON_MEDIA_TYPE)
    return JSON_MEDIA_TYPE


def render_json(body: Any) -> bytes:
    return JSONResponse(content=jsonable_encoder(body)).body


def encode_response(response: Optional[Response], request: Request) -> Optional[Response]:
    """Serialize an encode-marked response body; other responses pass unchanged."""
    if response is None or not response.encode:
        return response
    if response.body is None or isinstance(response.body, bytes):
        return Response(status=response.status, body=response.body, headers=response.headers)

    media_type = negotiate(request.header("accept"))
    content = render_json(response.body)
    headers = {
        k: v for k, v in response.headers.items() if k.lower() not in ("content-length", "content-type")
    }
    headers["Content-Type"] = media_type
    return Response(status=response.status, body=content, headers=headers)


def decode_body(request: Request) -> Request:
    """
    Decode a JSON body into ``body_params``.

    Requests that already carry ``body_params``, have no body, or declare a
    non-JSON content type are returned unchanged.
    """
    if "body_params" in request:
        return request
    content_type = request.header("content-type")
    body = request.get("body")
    if not body or not is_json(content_type):
        return request
    try:
        decoded = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(str(content_type), str(e)) from e
    return request.assoc("body_params", decoded)


def decode_error_response(exc: DecodeError) -> Response:
    return Response(
        status=400,
        body={"error": "malformed_body", "message": exc.message, "details": exc.context},
        encode=True,
    )


class FormatStage(Stage):
    name = "format"

    def __call__(self, request: Request) -> Optional[Response]:
        try:
            decoded = decode_body(request)
        except DecodeError as e:
            logger.warning("[%s] %s", request.get("request_id", ""), e.message)
            return encode_response(decode_error_response(e), request)
        return encode_response(self.handler(decoded), request)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        try:
            decoded = decode_body(request)
        except DecodeError as e:
            logger.warning("[%s] %s", request.get("request_id", ""), e.message)
            respond(encode_response(decode_error_response(e), request))
            return

        def on_respond(response: Optional[Response]) -> None:
            try:
                encoded = encode_response(response, request)
            except Exception as exc:
                raise_(exc)
                return
            respond(encoded)

        self.handler.call_async(decoded, on_respond, raise_)
