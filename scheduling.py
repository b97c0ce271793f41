"""
Clock and timer abstractions for the pipeline.

Production code runs timers on an asyncio loop; tests drive a manual
scheduler and a fake clock so debounce and cooldown behaviour is
deterministic.
"""

import asyncio
import time
from typing import Any, Callable, Optional, Protocol


class Clock(Protocol):
    def __call__(self) -> float: ...


def monotonic_clock() -> float:
    return time.monotonic()


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> Any: ...


class AsyncioScheduler:
    """
    Scheduler backed by an asyncio event loop.

    Without an explicit loop the running loop is bound on first use; calling
    it outside a running loop raises RuntimeError.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        return self.loop

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0.0, delay), callback, *args)

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> asyncio.Handle:
        return self._get_loop().call_soon_threadsafe(callback, *args)

    def time(self) -> float:
        return self._get_loop().time()
