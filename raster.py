"""
Raster fallback (tier 3): when no usable text reached the pipeline, capture
the screen, recognize it and feed the card text back in as source "ocr".

Capture and recognition run on a worker executor; the result is handed back
to the dispatch path through the scheduler, so pipeline state is only ever
touched from one thread.
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, List, Optional, Protocol, Sequence

import numpy as np

from classifier import detect_app_source, detect_app_source_from_text
from config import DEFAULT_REGION, RASTER_WORKER_COUNT, PipelineConfig
from models import AppSource, RecognizedBlock
from ocr_engines import extract_bottom_portion_text
from parsing import has_strong_ride_signal
from scheduling import Scheduler
from utils import binarize_for_ocr, capture_region, log_debug, to_grayscale, truncate_sample


class CaptureError(Exception):
    """Screen capture or text recognition failed."""


class ScreenCapture(Protocol):
    def grab(self) -> np.ndarray: ...


class TextRecognizer(Protocol):
    def recognize(self, image: np.ndarray) -> List[RecognizedBlock]: ...


class RegionScreenCapture:
    """ScreenCapture over a fixed screen region (mss)."""

    def __init__(self, region: Sequence[int] = DEFAULT_REGION) -> None:
        self.region = tuple(region)

    def grab(self) -> np.ndarray:
        try:
            return capture_region(self.region)
        except Exception as e:
            raise CaptureError(f"capture of region {self.region} failed: {e}") from e


EMPTY_TREE_TRIGGER = "empty-tree"


class RasterFallback:
    """
    Rate-limited screen OCR requests.

    Args:
        capture: ScreenCapture port
        recognizer: TextRecognizer port
        scheduler: marshals results back to the dispatch path
        clock: monotonic seconds
        on_text: called on the dispatch path with (source_id, text, trigger)
        window_visible: probe whether a monitored window is on screen
        executor: worker pool, a single-thread pool by default
    """

    def __init__(
        self,
        capture: Optional[ScreenCapture],
        recognizer: Optional[TextRecognizer],
        scheduler: Scheduler,
        clock: Callable[[], float],
        on_text: Callable[[str, str, str], None],
        config: Optional[PipelineConfig] = None,
        window_visible: Optional[Callable[[str], bool]] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.capture = capture
        self.recognizer = recognizer
        self.scheduler = scheduler
        self.clock = clock
        self.on_text = on_text
        self.config = config or PipelineConfig()
        self.window_visible = window_visible
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=RASTER_WORKER_COUNT, thread_name_prefix="raster")
        self._last_request_at: Optional[float] = None
        self._in_flight = False

        self.requests = 0
        self.failures = 0
        self.last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.config.raster_enabled and self.capture is not None and self.recognizer is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _cooldown_for(self, trigger: str) -> float:
        if trigger.startswith(EMPTY_TREE_TRIGGER):
            return self.config.empty_tree_raster_cooldown
        return self.config.raster_cooldown

    def request(self, source_id: str, trigger: str) -> bool:
        """Queue a capture for `source_id`. False when gated or rate limited."""
        if not self.enabled:
            return False
        if (
            not trigger.startswith(EMPTY_TREE_TRIGGER)
            and self.window_visible is not None
            and not self.window_visible(source_id)
        ):
            log_debug(f"[RASTER] skipped, no monitored window visible ({trigger})")
            return False

        now = self.clock()
        if self._last_request_at is not None and now - self._last_request_at < self._cooldown_for(trigger):
            return False
        if self._in_flight:
            return False

        previous_request_at = self._last_request_at
        self._last_request_at = now
        self._in_flight = True
        self.requests += 1
        hint = detect_app_source(source_id)
        log_debug(f"[RASTER] capture requested: source={source_id} trigger={trigger} vendor={hint.display_name}")
        try:
            self.executor.submit(self._run, source_id, trigger, hint)
        except RuntimeError as e:
            # Executor bereits heruntergefahren
            self._in_flight = False
            self._last_request_at = previous_request_at
            self.failures += 1
            self.last_error = f"{type(e).__name__}: {e}"
            log_debug(f"[RASTER] {trigger} not submitted: {self.last_error}")
            return False
        return True

    def crop_fraction_for(self, vendor: AppSource) -> float:
        if vendor == AppSource.NINETY_NINE:
            return self.config.crop_start_fraction_99
        return self.config.crop_start_fraction

    def recognize_screen(self, vendor: AppSource) -> str:
        """Capture, preprocess and recognize; returns the lower-screen text."""
        image = self.capture.grab()
        if image is None or getattr(image, "size", 0) == 0:
            raise CaptureError("empty capture")

        # 99 cards are low contrast; binarizing wipes out their grey labels
        processed = to_grayscale(image) if vendor == AppSource.NINETY_NINE else binarize_for_ocr(image)
        try:
            blocks = self.recognizer.recognize(processed)
        except Exception as e:
            raise CaptureError(f"recognition failed: {e}") from e
        return extract_bottom_portion_text(blocks, float(image.shape[0]), self.crop_fraction_for(vendor))

    def _run(self, source_id: str, trigger: str, vendor: AppSource) -> None:
        # Worker thread
        try:
            text = self.recognize_screen(vendor)
        except CaptureError as e:
            self.scheduler.call_soon_threadsafe(self._fail, trigger, str(e))
            return
        except Exception as e:
            self.scheduler.call_soon_threadsafe(self._fail, trigger, f"unexpected: {e}")
            return
        self.scheduler.call_soon_threadsafe(self._deliver, source_id, trigger, vendor, text)

    def _fail(self, trigger: str, message: str) -> None:
        self._in_flight = False
        self.failures += 1
        self.last_error = message
        log_debug(f"[RASTER] {trigger} failed: {message}")

    def _deliver(self, source_id: str, trigger: str, hint: AppSource, text: str) -> None:
        self._in_flight = False
        if not text.strip():
            log_debug(f"[RASTER] {trigger}: no text recognized")
            return

        vendor = detect_app_source_from_text(text)
        if vendor == AppSource.UNKNOWN:
            vendor = hint
        if not has_strong_ride_signal(text, vendor):
            log_debug(f"[RASTER] {trigger}: no ride signal in '{truncate_sample(text, 120)}'")
            return
        self.on_text(source_id, text, trigger)

    def shutdown(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=False)
