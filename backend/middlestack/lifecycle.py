"""
Middlestack — Component Lifecycle
==================================

What:  Starts and stops the pieces that make up a served pipeline.
How:   Each component has ``start(...)`` returning its running instance and
       ``stop(instance)``. ``MiddlewareSystem`` starts them in dependency
       order and stops them in reverse.

Components:

    route_middleware   → tuple of route-level stage descriptors
    router             → Router(routes, route_middleware)
    middleware         → fn(handler) -> handler wrapping the app-level stack

    handler = middleware(router)

Route-level stages run only after a route matched (they need route data);
application-level stages run for every request, matched or not.

No component holds external resources, so stopping only drops references.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from middlestack.config import MiddlewareConfig, app_middleware_config
from middlestack.exceptions import ConfigurationError
from middlestack.http.handler import Handler, HandlerLike
from middlestack.pipeline.assembler import DescriptorLike
from middlestack.pipeline.stacks import app_middleware, route_stage_descriptors
from middlestack.routing.router import Router, RouteLike

logger = logging.getLogger(__name__)

Middleware = Callable[[HandlerLike], Handler]


class Component:
    """Base lifecycle component."""

    name = "component"

    def start(self, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError

    def stop(self, instance: Any) -> None:
        logger.debug("Component %s stopped", self.name)


class RouteMiddlewareComponent(Component):
    name = "route_middleware"

    def start(self, config: MiddlewareConfig) -> Tuple[DescriptorLike, ...]:
        return tuple(route_stage_descriptors(config))


class RouterComponent(Component):
    name = "router"

    def start(self, routes: Iterable[RouteLike], middleware: Sequence[DescriptorLike]) -> Router:
        return Router(routes, middleware=middleware)


class AppMiddlewareComponent(Component):
    """Supplies ``fn(handler) -> wrapped handler`` for the application-level stack."""

    name = "middleware"

    def __init__(self, config: Optional[MiddlewareConfig] = None):
        self.config = config or app_middleware_config()

    def start(self, config: Optional[MiddlewareConfig] = None) -> Middleware:
        resolved = config or self.config

        def apply(handler: HandlerLike) -> Handler:
            return app_middleware(handler, resolved)

        return apply


class MiddlewareSystem:
    """
    The route middleware, router and app middleware started as one unit.

    Usage:
        system = MiddlewareSystem(routes=[("/ping", ping)])
        handler = system.start()
        ...
        system.stop()
    """

    def __init__(
        self,
        routes: Optional[Iterable[RouteLike]] = None,
        config: Optional[MiddlewareConfig] = None,
        components: Optional[Dict[str, Component]] = None,
    ):
        self.routes = list(routes) if routes is not None else None
        self.config = config or app_middleware_config()
        self.components: Dict[str, Component] = {
            "route_middleware": RouteMiddlewareComponent(),
            "router": RouterComponent(),
            "middleware": AppMiddlewareComponent(self.config),
        }
        self.components.update(components or {})
        self.instances: Dict[str, Any] = {}
        self._handler: Optional[Handler] = None

    @property
    def started(self) -> bool:
        return self._handler is not None

    @property
    def handler(self) -> Handler:
        if self._handler is None:
            raise ConfigurationError("MiddlewareSystem has not been started")
        return self._handler

    def start(self) -> Handler:
        """Start every component and return the fully wrapped handler."""
        if self._handler is not None:
            return self._handler
        if self.routes is None:
            raise ConfigurationError("MiddlewareSystem requires a route table", key="routes")

        route_mw = self._start("route_middleware", self.config)
        router = self._start("router", self.routes, route_mw)
        middleware = self._start("middleware", self.config)
        self._handler = middleware(router)
        logger.info("Middleware system started (%d route(s))", len(router.routes))
        return self._handler

    def stop(self) -> None:
        """Stop components in reverse start order."""
        for name in reversed(list(self.instances)):
            self.components[name].stop(self.instances[name])
        self.instances.clear()
        self._handler = None
        logger.info("Middleware system stopped")

    def _start(self, name: str, *args: Any) -> Any:
        instance = self.components[name].start(*args)
        self.instances[name] = instance
        logger.debug("Component %s started", name)
        return instance

    @property
    def started_components(self) -> List[str]:
        return list(self.instances)
