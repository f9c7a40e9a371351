"""
Middlestack — Test Configuration (conftest.py)
===============================================

What:  Shared pytest fixtures for the test suite.

Fixtures:
    public_dir       temporary public root with index.html and a static asset
    make_request     builds Request values with sensible defaults
    delivery         records continuation-convention deliveries
    client_factory   HTTPX AsyncClient against a started host application
"""

import os
from contextlib import AsyncExitStack
from typing import Any, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Keep the module-level application in middlestack.main quiet and route-less
os.environ.setdefault("MIDDLESTACK_LOG_LEVEL", "WARNING")
os.environ.pop("MIDDLESTACK_ROUTES", None)

from middlestack.config import Settings  # noqa: E402
from middlestack.http.request import Request  # noqa: E402
from middlestack.http.response import Response  # noqa: E402

INDEX_HTML = "<!doctype html><html><body><div id=app>shell</div></body></html>"


class Delivery:
    """Collects what a handler delivers through ``respond`` / ``raise_``."""

    def __init__(self) -> None:
        self.responses: List[Optional[Response]] = []
        self.errors: List[BaseException] = []

    def respond(self, response: Optional[Response]) -> None:
        self.responses.append(response)

    def raise_(self, exc: BaseException) -> None:
        self.errors.append(exc)

    @property
    def count(self) -> int:
        return len(self.responses) + len(self.errors)

    @property
    def response(self) -> Optional[Response]:
        assert self.count == 1, f"expected exactly one delivery, got {self.count}"
        assert not self.errors, f"expected a response, got {self.errors!r}"
        return self.responses[0]


@pytest.fixture
def public_dir(tmp_path):
    """A public root holding index.html and app.css."""
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text(INDEX_HTML)
    (root / "app.css").write_text("body { margin: 0; }")
    (tmp_path / "secret.txt").write_text("do not serve")
    return root


@pytest.fixture
def make_request():
    """Factory for Request values; keyword arguments override the defaults."""

    def _make(**kwargs: Any) -> Request:
        data = {"method": "GET", "path": "/", "headers": {}}
        data.update(kwargs)
        return Request(data)

    return _make


@pytest.fixture
def delivery():
    return Delivery()


@pytest_asyncio.fixture
async def client_factory():
    """
    Builds a host application, runs its lifespan, and yields an AsyncClient.

    Usage:
        client = await client_factory(routes=[("/ping", ping)])
        response = await client.get("/ping")
    """
    from middlestack.main import create_app

    stack = AsyncExitStack()

    async def _make(routes=None, settings: Optional[Settings] = None, config=None) -> AsyncClient:
        app = create_app(
            routes=routes or [],
            settings=settings or Settings(log_level="WARNING"),
            config=config,
        )
        await stack.enter_async_context(app.router.lifespan_context(app))
        return await stack.enter_async_context(
            AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        )

    yield _make
    await stack.aclose()
