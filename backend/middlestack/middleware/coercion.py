"""
Middlestack — Request Coercion
===============================

What:  Validates request parameter sources against the pydantic models a
       route declares and stores the coerced values under ``parameters``.
How:   A route declares ``parameters={"query": QueryModel, "path": PathModel}``.
       For each declared source the raw mapping is validated in pydantic's
       lax mode (``"5"`` → ``5``) and the dumped result is stored at
       ``request["parameters"][source]``. Undeclared sources are left alone.

Failure:
    400 Bad Request, encode=True
    {"error": "coercion_error", "message": "...", "details": {"source": ..., "errors": [...]}}
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ValidationError

from middlestack.exceptions import CoercionError
from middlestack.http.handler import Raise, Respond
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)

# parameters key → request key holding the raw values
COERCED_SOURCES: Dict[str, str] = {
    "body": "body_params",
    "path": "path_params",
    "query": "query_params",
    "form": "form_params",
    "multipart": "multipart_params",
}


def coerce_request(request: Request) -> Request:
    """Return a request with ``parameters`` filled in; raises CoercionError."""
    schemas: Optional[Mapping[str, Any]] = request.get_in(("route", "parameters"))
    if not schemas:
        return request

    parameters: Dict[str, Any] = dict(request.get("parameters") or {})
    for source, model in schemas.items():
        raw = request.get(COERCED_SOURCES[source])
        try:
            value: BaseModel = model.model_validate(raw if raw is not None else {})
        except ValidationError as e:
            raise CoercionError(source, json.loads(e.json(include_url=False))) from e
        parameters[source] = value.model_dump()
    return request.assoc("parameters", parameters)


def coercion_error_response(exc: CoercionError) -> Response:
    return Response(
        status=400,
        body={"error": "coercion_error", "message": exc.message, "details": exc.context},
        encode=True,
    )


class CoerceRequestStage(Stage):
    name = "coerce_request"

    def __call__(self, request: Request) -> Optional[Response]:
        try:
            coerced = coerce_request(request)
        except CoercionError as e:
            logger.warning("[%s] %s: %s", request.get("request_id", ""), e.message, e.errors)
            return coercion_error_response(e)
        return self.handler(coerced)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        try:
            coerced = coerce_request(request)
        except CoercionError as e:
            logger.warning("[%s] %s: %s", request.get("request_id", ""), e.message, e.errors)
            respond(coercion_error_response(e))
            return
        except Exception as exc:
            raise_(exc)
            return
        self.handler.call_async(coerced, respond, raise_)
