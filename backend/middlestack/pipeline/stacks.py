"""
Middlestack — Default Stacks
=============================

What:  The application-level and route-level stage lists, resolved from a
       MiddlewareConfig.

Application level (every request, outermost first):

    format_exception            translate failures into 500 responses
    security                    browser hardening headers
    responses                   content-type guessing, default charset
    gzip                        compress what comes back from below
    latency                     optional artificial delay
    static                      files under the public root
    default_index               application shell for unmatched navigation
    not_found                   fallback handler for absent responses

Route level (after a route matched, outermost first):

    format                      JSON body decoding and response encoding
    coerce_request              pydantic coercion into ``parameters``
    merge_params                ``all_params``
    encode_response             mark responses for encoding
"""

from typing import List, Optional

from middlestack.config import MiddlewareConfig, app_middleware_config
from middlestack.http.handler import Handler, HandlerLike
from middlestack.middleware import (
    CoerceRequestStage,
    ContentTypeStage,
    DefaultIndexStage,
    EncodeResponseStage,
    FormatExceptionStage,
    FormatStage,
    GzipStage,
    LatencyStage,
    MergeParamsStage,
    NotFoundStage,
    SecurityHeadersStage,
    StaticResourceStage,
)
from middlestack.pipeline.assembler import StageDescriptor, assemble


def framework_stage_descriptors(config: MiddlewareConfig) -> List[StageDescriptor]:
    return [
        StageDescriptor.of(SecurityHeadersStage, config.security, "security"),
        StageDescriptor.of(ContentTypeStage, config.responses, "responses"),
    ]


def endpoint_stage_descriptors(config: MiddlewareConfig) -> List[StageDescriptor]:
    return [
        StageDescriptor.of(GzipStage, config.gzip, "gzip"),
        StageDescriptor.of(LatencyStage, config.latency, "latency"),
        StageDescriptor.of(StaticResourceStage, config.static, "static"),
        StageDescriptor.of(DefaultIndexStage, config.default_index, "default_index"),
        StageDescriptor.of(NotFoundStage, config.not_found, "not_found"),
    ]


def app_stage_descriptors(config: Optional[MiddlewareConfig] = None) -> List[StageDescriptor]:
    """The full application-level list, outermost first."""
    config = config or app_middleware_config()
    return (
        [StageDescriptor.of(FormatExceptionStage, config.format_exception, "format_exception")]
        + framework_stage_descriptors(config)
        + endpoint_stage_descriptors(config)
    )


def route_stage_descriptors(config: Optional[MiddlewareConfig] = None) -> List[StageDescriptor]:
    config = config or app_middleware_config()
    return [
        StageDescriptor.of(FormatStage, True, "format"),
        StageDescriptor.of(CoerceRequestStage, True, "coerce_request"),
        StageDescriptor.of(MergeParamsStage, config.merge_params, "merge_params"),
        StageDescriptor.of(EncodeResponseStage, True, "encode_response"),
    ]


# Route middleware with every stage enabled
route_middleware = tuple(route_stage_descriptors())


def app_middleware(handler: HandlerLike, config: Optional[MiddlewareConfig] = None) -> Handler:
    """Wrap ``handler`` (usually the router) in the application-level stack."""
    return assemble(handler, app_stage_descriptors(config))
