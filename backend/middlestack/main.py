"""
Middlestack — Application Factory
==================================

What:  Creates the FastAPI host application serving an assembled pipeline.
How:   ``create_app()`` wires the pieces; the lifespan starts the
       MiddlewareSystem on startup and stops it on shutdown.
Who:   ``uvicorn middlestack.main:app`` (route table from MIDDLESTACK_ROUTES),
       or tests and embedding code calling ``create_app(routes=...)``.

Host Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI host                        │
    │                                                          │
    │  AccessLogMiddleware  (request ID, one log line/request) │
    │                                                          │
    │  GET /health          (FastAPI route)                    │
    │                                                          │
    │  /  → PipelineApp                                        │
    │        app-level stack → Router → route-level stack      │
    │                                      → route handler     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, start the MiddlewareSystem, attach its
               handler to the PipelineApp
    Shutdown:  detach the handler, stop the system
"""

import importlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, List, Optional

from fastapi import FastAPI

from middlestack import __version__
from middlestack.config import MiddlewareConfig, Settings, settings as default_settings
from middlestack.exceptions import ConfigurationError
from middlestack.host.access_log import AccessLogMiddleware
from middlestack.host.asgi import PipelineApp
from middlestack.host.health import router as health_router
from middlestack.lifecycle import MiddlewareSystem
from middlestack.routing.router import RouteLike

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """Configure root logging on stdout once per process start."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # uvicorn's own access log duplicates AccessLogMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Route Loading
# ══════════════════════════════════════════════════════════════════════════

def load_routes(reference: str) -> List[RouteLike]:
    """
    Import a route table from ``"package.module:attribute"``.

    The attribute may be the table itself or a zero-argument callable
    returning it.
    """
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            f"Routes reference must look like 'package.module:attribute', got {reference!r}",
            key="routes",
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import routes module {module_name!r}: {e}", key="routes") from e
    try:
        table = getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(f"Module {module_name!r} has no attribute {attribute!r}", key="routes") from e
    if callable(table):
        table = table()
    return list(table)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    routes: Optional[Iterable[RouteLike]] = None,
    settings: Optional[Settings] = None,
    config: Optional[MiddlewareConfig] = None,
) -> FastAPI:
    """
    Build the host application.

    Args:
        routes:   Route table; defaults to MIDDLESTACK_ROUTES, else empty
                  (every request then falls through to the fallback stages).
        settings: Process settings; defaults to the environment.
        config:   Middleware configuration; defaults to ``settings.middleware_config()``.
    """
    settings = settings or default_settings
    config = config or settings.middleware_config()
    if routes is None:
        routes = load_routes(settings.routes) if settings.routes else []

    system = MiddlewareSystem(routes=routes, config=config)
    pipeline = PipelineApp(config=config, mode=settings.handler_mode)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(settings.log_level)
        logger.info("Middlestack %s starting (handler mode: %s)", __version__, settings.handler_mode)
        pipeline.handler = system.start()
        logger.info("Serving on http://%s:%d", settings.host, settings.port)

        yield

        logger.info("Middlestack shutting down...")
        pipeline.handler = None
        system.stop()
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Middlestack",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.system = system
    app.state.pipeline = pipeline

    app.add_middleware(AccessLogMiddleware)
    app.include_router(health_router)
    app.mount("/", pipeline, name="pipeline")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "middlestack.main:app",
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )
