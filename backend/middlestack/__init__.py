"""
Middlestack — Application Package Initializer
==============================================

What: A configurable request-handling pipeline assembled once at startup.
How:  Handlers are plain objects mapping a Request to a Response (or None).
      Stages wrap handlers; the assembler folds an ordered list of stages
      over a base handler according to declarative configuration.

Layout:

    ┌──────────────────────────────────────────┐
    │  host/       ASGI binding + access log   │  ← Starlette/FastAPI
    ├──────────────────────────────────────────┤
    │  lifecycle   start/stop of the system    │
    ├──────────────────────────────────────────┤
    │  pipeline/   assembler + default stacks  │
    ├──────────────────────────────────────────┤
    │  middleware/ individual stages           │
    ├──────────────────────────────────────────┤
    │  routing/    route matching              │
    ├──────────────────────────────────────────┤
    │  http/       Request, Response, Handler  │
    └──────────────────────────────────────────┘
"""

__version__ = "1.0.0"
