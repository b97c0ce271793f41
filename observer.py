"""
Content observer adapter: polls the mirrored phone screen and turns changes
of the recognized text into RawSnapshot events for the pipeline.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Protocol

from classifier import detect_app_source_from_text
from config import DEFAULT_REGION, POLL_INTERVAL
from models import AppSource, EventKind, RawSnapshot
from ocr_engines import blocks_to_text
from raster import CaptureError, RegionScreenCapture, ScreenCapture, TextRecognizer
from utils import log_debug, make_content_hash, preprocess, recognize_cached

SnapshotCallback = Callable[[RawSnapshot], None]

_VENDOR_SOURCE_IDS = {
    AppSource.UBER: "com.ubercab.driver",
    AppSource.NINETY_NINE: "com.app99.driver",
}


class ContentObserver(Protocol):
    def subscribe(self, callback: SnapshotCallback) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class ScreenPollingObserver:
    """
    Poll a screen region, OCR it and emit snapshots when the text changes.

    The first text after an empty screen is a WINDOW_APPEARED event, later
    changes are CONTENT_CHANGED. An empty screen after text emits an empty
    CONTENT_CHANGED snapshot so the pipeline can request a raster pass.
    """

    def __init__(
        self,
        recognizer: TextRecognizer,
        capture: Optional[ScreenCapture] = None,
        poll_interval: float = POLL_INTERVAL,
        default_source: str = "screen",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capture = capture or RegionScreenCapture(DEFAULT_REGION)
        self.recognizer = recognizer
        self.poll_interval = max(0.05, poll_interval)
        self.default_source = default_source
        self.clock = clock
        self._callbacks: List[SnapshotCallback] = []
        self._task: Optional[asyncio.Task] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="observer")
        self._stop_requested = False
        self._last_hash: Optional[str] = None
        self._last_text = ""
        self.capture_errors = 0

    def subscribe(self, callback: SnapshotCallback) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        self._stop_requested = False
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._poll_loop(), name="observer-poll")

    def stop(self) -> None:
        self._stop_requested = True
        if self._task and not self._task.done():
            self._task.cancel()
        self._executor.shutdown(wait=False)

    def monitored_window_visible(self, source_id: str = "") -> bool:
        """True while the last polled screen showed a recognizable driver app card."""
        return bool(self._last_text) and detect_app_source_from_text(self._last_text) != AppSource.UNKNOWN

    def source_for_text(self, text: str) -> str:
        return _VENDOR_SOURCE_IDS.get(detect_app_source_from_text(text), self.default_source)

    def read_screen(self) -> str:
        image = self.capture.grab()
        blocks, _ = recognize_cached(preprocess(image, black_and_white=False), self.recognizer.recognize)
        return blocks_to_text(blocks)

    def process_text(self, text: str) -> Optional[RawSnapshot]:
        """Compare with the previous poll; returns the snapshot to emit, if any."""
        text = text.strip()
        content_hash = make_content_hash(text)
        if content_hash == self._last_hash:
            return None

        previous = self._last_text
        self._last_hash = content_hash
        self._last_text = text
        if not text and not previous:
            return None

        kind = EventKind.WINDOW_APPEARED if text and not previous else EventKind.CONTENT_CHANGED
        source = self.source_for_text(text or previous)
        return RawSnapshot(kind=kind, source=source, text=text, timestamp=self.clock(), origin="all-screen")

    def _emit(self, snapshot: RawSnapshot) -> None:
        for callback in list(self._callbacks):
            callback(snapshot)

    async def _poll_loop(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            while not self._stop_requested:
                try:
                    text = await loop.run_in_executor(self._executor, self.read_screen)
                except CaptureError as e:
                    self.capture_errors += 1
                    log_debug(f"[OBSERVER] {e}")
                    text = None
                if text is not None:
                    snapshot = self.process_text(text)
                    if snapshot is not None:
                        self._emit(snapshot)
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            pass
