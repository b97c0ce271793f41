from typing import Any, Callable, Optional

from scheduling import Scheduler, TimerHandle
from utils import log_debug


class Debouncer:
    """
    Single-slot debounce: every submit replaces the pending payload and
    restarts the timer, so only the last payload of a burst is delivered.
    """

    def __init__(self, scheduler: Scheduler, delay: float, name: str = "debounce") -> None:
        self.scheduler = scheduler
        self.delay = max(0.0, delay)
        self.name = name
        self._handle: Optional[TimerHandle] = None
        self._payload: Any = None
        self._callback: Optional[Callable[[Any], None]] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def pending_payload(self) -> Any:
        return self._payload if self._handle is not None else None

    def submit(self, payload: Any, callback: Callable[[Any], None]) -> None:
        if self._handle is not None:
            self._handle.cancel()
            log_debug(f"[{self.name.upper()}] pending payload replaced")
        self._payload = payload
        self._callback = callback
        self._handle = self.scheduler.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._reset()

    def _reset(self) -> None:
        self._handle = None
        self._payload = None
        self._callback = None

    def _fire(self) -> None:
        payload, callback = self._payload, self._callback
        self._reset()
        if callback is not None:
            callback(payload)
