"""
Middlestack — Artificial Latency
=================================

What:  Delays every request before it reaches the inner handler.
Why:   Local development against an in-process backend answers in
       microseconds; this simulates production response times.

Options (milliseconds):
    sleep       fixed delay
    sleep_max   when set, the delay is drawn uniformly from [sleep, sleep_max)

Blocking:
    The direct-return convention blocks the calling thread with time.sleep.
    The continuation convention schedules the inner call with
    ``loop.call_later`` so the event loop keeps serving other requests.
    No lock is held while waiting.
"""

import asyncio
import logging
import random
import time
from typing import Optional

from middlestack.config import LatencyOptions
from middlestack.http.handler import Raise, Respond
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import Stage

logger = logging.getLogger(__name__)


def latency_ms(sleep: float, sleep_max: Optional[float] = None) -> float:
    """Pick a delay in milliseconds."""
    if sleep_max is None:
        return sleep
    return sleep + random.random() * (sleep_max - sleep)


class LatencyStage(Stage):
    name = "latency"
    options_model = LatencyOptions

    def delay_seconds(self) -> float:
        return latency_ms(self.options.sleep, self.options.sleep_max) / 1000.0

    def __call__(self, request: Request) -> Optional[Response]:
        delay = self.delay_seconds()
        logger.debug("Injecting %.1fms latency before %s %s", delay * 1000, request.method, request.path)
        time.sleep(delay)
        return self.handler(request)

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        delay = self.delay_seconds()
        logger.debug("Injecting %.1fms latency before %s %s", delay * 1000, request.method, request.path)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            time.sleep(delay)
            self._dispatch(request, respond, raise_)
            return
        loop.call_later(delay, self._dispatch, request, respond, raise_)

    def _dispatch(self, request: Request, respond: Respond, raise_: Raise) -> None:
        try:
            self.handler.call_async(request, respond, raise_)
        except Exception as exc:
            raise_(exc)
