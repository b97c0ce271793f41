import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from _fakes import FakeClock, ManualScheduler, SyncExecutor  # noqa: E402
from config import PipelineConfig  # noqa: E402
from models import AppSource, RecognizedBlock  # noqa: E402
from raster import EMPTY_TREE_TRIGGER, CaptureError, RasterFallback  # noqa: E402

CARD_LINES = ["UberX", "R$ 18,50", "3 min (1.1 km)", "9 min (5.5 km)"]


class _Capture:
    def __init__(self, image=None, error=None):
        self.image = image if image is not None else np.full((100, 50, 3), 200, dtype=np.uint8)
        self.error = error

    def grab(self):
        if self.error is not None:
            raise self.error
        return self.image


class _Recognizer:
    def __init__(self, blocks):
        self.blocks = blocks
        self.images = []

    def recognize(self, image):
        self.images.append(image)
        return self.blocks


def _blocks(lines, top=50.0):
    return [
        RecognizedBlock(text=line, bbox=(0.0, top + i * 5, 50.0, top + 4 + i * 5), lines=[line])
        for i, line in enumerate(lines)
    ]


def _raster(capture=None, recognizer=None, window_visible=None, config=None):
    clock = FakeClock()
    scheduler = ManualScheduler(clock)
    delivered = []
    raster = RasterFallback(
        capture or _Capture(),
        recognizer or _Recognizer(_blocks(CARD_LINES)),
        scheduler,
        clock,
        on_text=lambda *args: delivered.append(args),
        config=config,
        window_visible=window_visible,
        executor=SyncExecutor(),
    )
    return raster, scheduler, clock, delivered


def test_result_is_delivered_through_scheduler():
    raster, scheduler, _, delivered = _raster()

    assert raster.request("com.ubercab.driver", "parse-miss")
    assert delivered == []
    assert raster.in_flight

    scheduler.run_ready()

    assert delivered == [("com.ubercab.driver", "\n".join(CARD_LINES), "parse-miss")]
    assert not raster.in_flight


def test_requests_are_rate_limited():
    raster, scheduler, clock, _ = _raster()

    assert raster.request("com.ubercab.driver", "parse-miss")
    scheduler.run_ready()
    clock.advance(0.5)
    assert not raster.request("com.ubercab.driver", "parse-miss")

    clock.advance(1.0)
    assert raster.request("com.ubercab.driver", "parse-miss")
    assert raster.requests == 2


def test_empty_tree_uses_shorter_cooldown_and_skips_visibility_probe():
    raster, scheduler, clock, _ = _raster(window_visible=lambda source: False)

    assert not raster.request("com.ubercab.driver", "parse-miss")
    assert raster.request("com.ubercab.driver", EMPTY_TREE_TRIGGER)
    scheduler.run_ready()

    clock.advance(0.8)
    assert raster.request("com.ubercab.driver", EMPTY_TREE_TRIGGER)


def test_in_flight_request_blocks_next_one():
    raster, scheduler, clock, _ = _raster()

    raster.request("com.ubercab.driver", "parse-miss")
    clock.advance(5.0)

    assert not raster.request("com.ubercab.driver", "parse-miss")


class _ClosedExecutor:
    def submit(self, fn, *args, **kwargs):
        raise RuntimeError("cannot schedule new futures after shutdown")


def test_refused_submit_does_not_block_later_requests():
    raster, scheduler, _, delivered = _raster()
    working = raster.executor
    raster.executor = _ClosedExecutor()

    assert not raster.request("com.ubercab.driver", "parse-miss")
    assert not raster.in_flight
    assert raster.failures == 1
    assert "shutdown" in raster.last_error

    raster.executor = working

    assert raster.request("com.ubercab.driver", "parse-miss")
    scheduler.run_ready()
    assert len(delivered) == 1


def test_capture_error_is_counted():
    raster, scheduler, _, delivered = _raster(capture=_Capture(error=CaptureError("no display")))

    raster.request("com.ubercab.driver", "parse-miss")
    scheduler.run_ready()

    assert delivered == []
    assert raster.failures == 1
    assert "no display" in raster.last_error
    assert not raster.in_flight


def test_text_without_ride_signal_is_dropped():
    raster, scheduler, _, delivered = _raster(recognizer=_Recognizer(_blocks(["Ganhos de hoje", "R$ 120,00"])))

    raster.request("com.ubercab.driver", "parse-miss")
    scheduler.run_ready()

    assert delivered == []
    assert raster.failures == 0


def test_blocks_above_card_area_are_ignored():
    blocks = _blocks(["Mapa", "R$ 999,00"], top=2.0) + _blocks(CARD_LINES, top=50.0)
    raster, scheduler, _, delivered = _raster(recognizer=_Recognizer(blocks))

    raster.request("com.ubercab.driver", "parse-miss")
    scheduler.run_ready()

    assert delivered[0][1] == "\n".join(CARD_LINES)


def test_99_screens_keep_the_whole_image_in_grayscale():
    recognizer = _Recognizer(_blocks(CARD_LINES))
    raster, scheduler, _, _ = _raster(recognizer=recognizer)

    assert raster.crop_fraction_for(AppSource.NINETY_NINE) == 0.0
    assert raster.crop_fraction_for(AppSource.UBER) == 0.3

    raster.request("com.app99.driver", "parse-miss")

    assert recognizer.images[0].ndim == 2


def test_disabled_without_ports_or_by_config():
    clock = FakeClock()
    raster = RasterFallback(None, None, ManualScheduler(clock), clock, on_text=lambda *a: None, executor=SyncExecutor())
    assert not raster.enabled
    assert not raster.request("com.ubercab.driver", "parse-miss")

    raster, _, _, _ = _raster(config=PipelineConfig().with_overrides(raster_enabled=False))
    assert not raster.request("com.ubercab.driver", "parse-miss")
