"""
Deterministic stand-ins for the pipeline's time, timer and worker ports.
"""
from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Callable, List, Tuple

from models import AppSource, CanonicalRideOffer


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _Timer:
    def __init__(self, due: float, callback: Callable[..., Any], args: tuple) -> None:
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Timers fire only when the test advances the fake clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.timers: List[_Timer] = []
        self.soon: List[Tuple[Callable[..., Any], tuple]] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _Timer:
        timer = _Timer(self.clock.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        self.soon.append((callback, args))

    @property
    def pending_timers(self) -> List[_Timer]:
        return [t for t in self.timers if not t.cancelled]

    def run_ready(self) -> None:
        while self.soon:
            callback, args = self.soon.pop(0)
            callback(*args)

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            self.run_ready()
            due = sorted((t for t in self.pending_timers if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self.clock.now = max(self.clock.now, timer.due)
            timer.callback(*timer.args)
        self.clock.now = target
        self.run_ready()


class SyncExecutor:
    """Runs submitted work inline."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:  # surfaced through the future like a real pool
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


class RecordingConsumer:
    def __init__(self) -> None:
        self.offers: List[CanonicalRideOffer] = []
        self.accepted: List[AppSource] = []

    def on_ride_detected(self, offer: CanonicalRideOffer) -> None:
        self.offers.append(offer)

    def on_ride_accepted(self, app_source: AppSource) -> None:
        self.accepted.append(app_source)
