"""
Middlestack — Middleware Stages
================================

What:  One class per cross-cutting behaviour. Each stage wraps a handler and
       supports both calling conventions.

Application-level chain (outermost first; applied to every request):

    format_exception → security → responses → gzip → latency
        → static → default_index → not_found → router

Route-level chain (applied once a route has matched):

    format → coerce_request → merge_params → encode_response → route handler

Responses travel back through the same stages in reverse order.
"""

from middlestack.middleware.base import PassThroughStage, ResponseStage, Stage
from middlestack.middleware.coercion import CoerceRequestStage
from middlestack.middleware.compression import GzipStage
from middlestack.middleware.default_index import DefaultIndexStage
from middlestack.middleware.encode import EncodeResponseStage
from middlestack.middleware.exception import FormatExceptionStage
from middlestack.middleware.format import FormatStage
from middlestack.middleware.latency import LatencyStage
from middlestack.middleware.not_found import NotFoundStage
from middlestack.middleware.params import MergeParamsStage, merge_params
from middlestack.middleware.responses import ContentTypeStage
from middlestack.middleware.security import SecurityHeadersStage
from middlestack.middleware.static import StaticResourceStage

__all__ = [
    "CoerceRequestStage",
    "ContentTypeStage",
    "DefaultIndexStage",
    "EncodeResponseStage",
    "FormatExceptionStage",
    "FormatStage",
    "GzipStage",
    "LatencyStage",
    "MergeParamsStage",
    "NotFoundStage",
    "PassThroughStage",
    "ResponseStage",
    "SecurityHeadersStage",
    "Stage",
    "StaticResourceStage",
    "merge_params",
]
