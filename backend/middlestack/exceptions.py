"""
Middlestack — Exception Hierarchy
==================================

What:  Application-specific exceptions raised while building or running a pipeline.
How:   Each exception carries a message and an optional context dict. The
       context is the structured payload the exception translator reports as
       ``ex_data`` when diagnostic output is enabled.

Exception Hierarchy:
    MiddlestackError (base)
    ├── ConfigurationError   → raised at startup, never per request
    ├── RouteConflictError   → two routes claim the same path and method
    ├── CoercionError        → request data failed schema coercion (400)
    ├── DecodeError          → request body is not valid in its declared format (400)
    └── HandlerContractError → a handler was driven through the wrong convention
"""

from typing import Any, Dict, List, Optional


class MiddlestackError(Exception):
    """
    Base exception for all middlestack errors.

    Attributes:
        message:  Human-readable error description
        context:  Structured data attached to the failure
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(MiddlestackError):
    """
    Raised when the pipeline or system configuration is unusable.

    When:  Unknown stage options, a missing route table, an unimportable
           routes reference. Always raised during assembly, never while
           serving a request.
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if key:
            ctx["key"] = key
        super().__init__(message=message, context=ctx)
        self.key = key


class RouteConflictError(MiddlestackError):
    """Raised when two routes are registered for the same path and method."""

    def __init__(
        self,
        path: str,
        method: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["path"] = path
        ctx["method"] = method
        super().__init__(
            message=f"Route {method} {path} is defined more than once",
            context=ctx,
        )
        self.path = path
        self.method = method


class CoercionError(MiddlestackError):
    """
    Raised when request data does not match a route's parameter schema.

    HTTP:  400 Bad Request (rendered by the coercion stage itself)

    Example context:
        {
            "source": "query",
            "errors": [{"loc": ["limit"], "msg": "Input should be a valid integer"}]
        }
    """

    def __init__(
        self,
        source: str,
        errors: List[Dict[str, Any]],
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["source"] = source
        ctx["errors"] = errors
        super().__init__(
            message=f"Request {source} parameters failed coercion",
            context=ctx,
        )
        self.source = source
        self.errors = errors


class HandlerContractError(MiddlestackError):
    """
    Raised when a handler is driven through a calling convention it cannot honour.

    Example:  calling a coroutine handler through the direct-return entry point.
    """

    def __init__(
        self,
        message: str = "Handler does not support this calling convention",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DecodeError(MiddlestackError):
    """
    Raised when a request body cannot be decoded in its declared format.

    HTTP:  400 Bad Request (rendered by the format stage)
    """

    def __init__(
        self,
        content_type: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["content_type"] = content_type
        ctx["reason"] = reason
        super().__init__(
            message=f"Malformed request body for content type '{content_type}'",
            context=ctx,
        )
        self.content_type = content_type
        self.reason = reason
