"""
Middlestack — Handler Conventions
==================================

What:  The two calling conventions every handler supports, plus adapters
       that turn plain functions into handlers.
How:   A handler is an object with two explicit entry points:

    handler(request) -> Optional[Response]
        Direct-return convention. Runs to completion on the calling thread.

    handler.call_async(request, respond, raise_) -> None
        Continuation convention. The result is delivered later by calling
        ``respond(response_or_none)`` or ``raise_(exception)``, exactly once.

Adapters:
    as_handler(fn)          fn(request) -> Optional[Response]   (or ``async def``)
    as_async_handler(fn)    fn(request, respond, raise_) -> None
"""

import asyncio
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from middlestack.exceptions import HandlerContractError
from middlestack.http.request import Request
from middlestack.http.response import Response

logger = logging.getLogger(__name__)

Respond = Callable[[Optional[Response]], None]
Raise = Callable[[BaseException], None]


class Handler:
    """Base class for anything that can serve a Request."""

    def __call__(self, request: Request) -> Optional[Response]:
        raise NotImplementedError

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        raise NotImplementedError


class FunctionHandler(Handler):
    """Adapts ``fn(request) -> Optional[Response]``."""

    def __init__(self, fn: Callable[[Request], Optional[Response]]):
        self.fn = fn

    def __call__(self, request: Request) -> Optional[Response]:
        return self.fn(request)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        try:
            result = self.fn(request)
        except Exception as exc:
            raise_(exc)
            return
        respond(result)

    def __repr__(self) -> str:
        return f"FunctionHandler({getattr(self.fn, '__qualname__', self.fn)!r})"


class ContinuationHandler(Handler):
    """
    Adapts ``fn(request, respond, raise_)``.

    The direct entry point only works when ``fn`` delivers its result before
    returning; a handler that defers delivery must be driven through
    ``call_async``.
    """

    def __init__(self, fn: Callable[[Request, Respond, Raise], None]):
        self.fn = fn

    def __call__(self, request: Request) -> Optional[Response]:
        outcome: dict = {}
        self.fn(
            request,
            lambda response: outcome.setdefault("response", response),
            lambda exc: outcome.setdefault("error", exc),
        )
        if "error" in outcome:
            raise outcome["error"]
        if "response" not in outcome:
            raise HandlerContractError(
                "Continuation handler did not deliver a result synchronously",
                context={"handler": getattr(self.fn, "__qualname__", repr(self.fn))},
            )
        return outcome["response"]

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        self.fn(request, respond, raise_)


class CoroutineHandler(Handler):
    """
    Adapts ``async def fn(request) -> Optional[Response]``.

    ``call_async`` schedules the coroutine on the running loop; the direct
    entry point cannot await and is rejected.
    """

    def __init__(self, fn: Callable[[Request], Awaitable[Optional[Response]]]):
        self.fn = fn

    def __call__(self, request: Request) -> Optional[Response]:
        raise HandlerContractError(
            "Coroutine handlers only support the continuation convention",
            context={"handler": getattr(self.fn, "__qualname__", repr(self.fn))},
        )

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        task = asyncio.ensure_future(self.fn(request))

        def done(t: "asyncio.Future[Optional[Response]]") -> None:
            if t.cancelled():
                raise_(asyncio.CancelledError())
            elif t.exception() is not None:
                raise_(t.exception())
            else:
                respond(t.result())

        task.add_done_callback(done)


HandlerLike = Union[Handler, Callable[..., Any]]


def as_handler(fn: HandlerLike) -> Handler:
    """Wrap a direct-return function (sync or ``async def``) as a Handler."""
    if isinstance(fn, Handler):
        return fn
    if inspect.iscoroutinefunction(fn):
        return CoroutineHandler(fn)
    if not callable(fn):
        raise TypeError(f"Handler must be callable, got {type(fn).__name__}")
    return FunctionHandler(fn)


def as_async_handler(fn: Callable[[Request, Respond, Raise], None]) -> Handler:
    """Wrap a continuation-style function as a Handler."""
    if isinstance(fn, Handler):
        return fn
    return ContinuationHandler(fn)


# ══════════════════════════════════════════════════════════════════════════
# Continuation helpers
# ══════════════════════════════════════════════════════════════════════════

def once(respond: Respond, raise_: Raise, name: str = "handler") -> Tuple[Respond, Raise]:
    """
    Guard a pair of continuations so only the first delivery goes through.

    Later deliveries are dropped and logged at WARNING.
    """
    lock = threading.Lock()
    delivered = [False]

    def claim() -> bool:
        with lock:
            if delivered[0]:
                return False
            delivered[0] = True
            return True

    def guarded_respond(response: Optional[Response]) -> None:
        if claim():
            respond(response)
        else:
            logger.warning("%s delivered a second result; ignored", name)

    def guarded_raise(exc: BaseException) -> None:
        if claim():
            raise_(exc)
        else:
            logger.warning("%s raised after delivering a result; ignored: %s", name, exc)

    return guarded_respond, guarded_raise


async def invoke_async(handler: Handler, request: Request) -> Optional[Response]:
    """Drive ``handler.call_async`` from a coroutine and await its single result."""
    loop = asyncio.get_running_loop()
    future: "asyncio.Future[Optional[Response]]" = loop.create_future()

    def settle(setter: Callable[[Any], None], value: Any) -> None:
        if not future.done():
            setter(value)

    def respond(response: Optional[Response]) -> None:
        if _on_loop_thread(loop):
            settle(future.set_result, response)
        else:
            loop.call_soon_threadsafe(settle, future.set_result, response)

    def raise_(exc: BaseException) -> None:
        if _on_loop_thread(loop):
            settle(future.set_exception, exc)
        else:
            loop.call_soon_threadsafe(settle, future.set_exception, exc)

    handler.call_async(request, respond, raise_)
    return await future


def _on_loop_thread(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
