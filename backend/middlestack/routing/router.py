"""
Middlestack — Router
=====================

What:  Matches a request's method and path against a route table and runs
       the matched route's handler inside the route-level stack.
How:   Path templates use Starlette's syntax and convertors
       (``/items/{item_id:int}``, ``/files/{rest:path}``). Each route
       handler is wrapped once, at construction, in the router's route
       middleware followed by the route's own middleware.

Outcomes:
    no path matches             → None (absence; the app-level stack decides)
    path matches, method not    → 405 with an Allow header
    match                       → route handler result, with ``path_params``
                                  and ``route`` set on the request

Route table entries:
    Route("/items/{id:int}", get_item, methods=["GET"], parameters={"path": ItemPath})
    Route("/items", {"GET": list_items, "POST": create_item})
    ("/health", health)                                # tuple shorthand
    ("/items", list_items, {"name": "items"})          # with Route kwargs
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from starlette.routing import compile_path

from middlestack.exceptions import ConfigurationError, RouteConflictError
from middlestack.http.handler import Handler, HandlerLike, Raise, Respond, as_handler
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.coercion import COERCED_SOURCES
from middlestack.pipeline.assembler import DescriptorLike, assemble
from middlestack.pipeline.stacks import route_middleware

logger = logging.getLogger(__name__)

ANY_METHOD = "*"


class Route:
    """One entry of the route table."""

    def __init__(
        self,
        path: str,
        endpoint: Union[HandlerLike, Mapping[str, HandlerLike]],
        *,
        methods: Optional[Iterable[str]] = None,
        name: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        middleware: Sequence[DescriptorLike] = (),
        data: Optional[Mapping[str, Any]] = None,
    ):
        if not path.startswith("/"):
            raise ConfigurationError(f"Route path must start with '/': {path!r}", key="routes")
        self.path = path
        self.name = name or path
        self.regex, self.path_format, self.convertors = compile_path(path)

        if isinstance(endpoint, Mapping):
            if methods is not None:
                raise ConfigurationError(
                    f"Route {path}: pass either a method mapping or methods=, not both",
                    key="routes",
                )
            handlers = {m.upper(): as_handler(h) for m, h in endpoint.items()}
        else:
            handler = as_handler(endpoint)
            handlers = {m.upper(): handler for m in (methods or [ANY_METHOD])}
        if "GET" in handlers and "HEAD" not in handlers:
            handlers["HEAD"] = handlers["GET"]
        self.handlers: Mapping[str, Handler] = MappingProxyType(handlers)

        unknown = set(parameters or {}) - set(COERCED_SOURCES)
        if unknown:
            raise ConfigurationError(
                f"Route {path}: unknown parameter sources {sorted(unknown)}",
                key="routes",
                context={"allowed": sorted(COERCED_SOURCES)},
            )
        self.parameters: Mapping[str, Any] = MappingProxyType(dict(parameters or {}))
        self.middleware: Tuple[DescriptorLike, ...] = tuple(middleware)
        self.data: Mapping[str, Any] = MappingProxyType(
            {**dict(data or {}), "name": self.name, "path": path, "parameters": self.parameters}
        )

    @property
    def methods(self) -> List[str]:
        return sorted(self.handlers)

    def match(self, path: str) -> Optional[Dict[str, Any]]:
        """Return converted path parameters, or None when ``path`` does not match."""
        found = self.regex.match(path)
        if found is None:
            return None
        return {key: self.convertors[key].convert(value) for key, value in found.groupdict().items()}

    def __repr__(self) -> str:
        return f"Route({self.path!r}, methods={self.methods})"


RouteLike = Union[Route, Tuple[Any, ...]]


def as_route(entry: RouteLike) -> Route:
    if isinstance(entry, Route):
        return entry
    if isinstance(entry, tuple) and len(entry) == 2:
        return Route(entry[0], entry[1])
    if isinstance(entry, tuple) and len(entry) == 3 and isinstance(entry[2], Mapping):
        return Route(entry[0], entry[1], **entry[2])
    raise ConfigurationError(f"Unrecognised route entry: {entry!r}", key="routes")


class Router(Handler):
    """A Handler that dispatches to matched routes and returns None otherwise."""

    def __init__(
        self,
        routes: Iterable[RouteLike],
        middleware: Sequence[DescriptorLike] = route_middleware,
    ):
        self.routes: List[Route] = [as_route(r) for r in routes]
        self.middleware: Tuple[DescriptorLike, ...] = tuple(middleware)
        self._check_conflicts()
        self._compiled: List[Tuple[Route, Dict[str, Handler]]] = [
            (
                route,
                {
                    method: assemble(
                        handler,
                        list(self.middleware) + list(route.middleware),
                        log_level=logging.DEBUG,
                    )
                    for method, handler in route.handlers.items()
                },
            )
            for route in self.routes
        ]
        logger.info("Router built with %d route(s)", len(self.routes))

    def _check_conflicts(self) -> None:
        seen = set()
        for route in self.routes:
            for method in route.handlers:
                key = (route.path_format, method)
                if key in seen:
                    raise RouteConflictError(route.path, method)
                seen.add(key)

    def resolve(self, request: Request) -> Union[None, Response, Tuple[Handler, Request]]:
        """
        Find the handler for ``request``.

        Returns None (no path match), a 405 Response (path match, method
        mismatch) or the wrapped handler with the routed request.
        """
        path, method = request.path, request.method
        allowed: List[str] = []
        for route, handlers in self._compiled:
            path_params = route.match(path)
            if path_params is None:
                continue
            handler = handlers.get(method) or handlers.get(ANY_METHOD)
            if handler is None:
                allowed.extend(route.methods)
                continue
            routed = request.update(path_params=path_params, route=route.data)
            return handler, routed

        if allowed:
            logger.debug("Method %s not allowed for %s (allowed: %s)", method, path, allowed)
            return Response(status=405, headers={"Allow": ", ".join(sorted(set(allowed)))})
        return None

    def __call__(self, request: Request) -> Optional[Response]:
        resolved = self.resolve(request)
        if resolved is None or isinstance(resolved, Response):
            return resolved
        handler, routed = resolved
        return handler(routed)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        try:
            resolved = self.resolve(request)
        except Exception as exc:
            raise_(exc)
            return
        if resolved is None or isinstance(resolved, Response):
            respond(resolved)
            return
        handler, routed = resolved
        handler.call_async(routed, respond, raise_)
