"""Route table and matching."""

from middlestack.routing.router import Route, Router, as_route

__all__ = ["Route", "Router", "as_route"]
