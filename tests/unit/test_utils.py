import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

import utils  # noqa: E402
from _fakes import FakeClock  # noqa: E402


def test_to_float_handles_ocr_numbers():
    assert utils.to_float("18,50") == 18.5
    assert utils.to_float(" 5.5 ") == 5.5
    assert utils.to_float("") is None
    assert utils.to_float(None) is None
    assert utils.to_float("1.234,5") is None


def test_diagnostic_throttle_per_key():
    clock = FakeClock()
    throttle = utils.DiagnosticThrottle(clock, interval=10.0)

    assert throttle.should_log("a")
    assert not throttle.should_log("a")
    assert throttle.should_log("b")

    clock.advance(10.0)
    assert throttle.should_log("a")


def test_diagnostic_throttle_is_bounded():
    clock = FakeClock()
    throttle = utils.DiagnosticThrottle(clock, interval=10.0, max_keys=2)

    for key in ("a", "b", "c"):
        clock.advance(1.0)
        throttle.should_log(key)

    assert throttle.should_log("a")


def test_binarize_splits_at_mean():
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    img[0, :] = 250

    binary = utils.binarize_for_ocr(img)

    assert binary.shape == (2, 2)
    assert binary[0, 0] == 255
    assert binary[1, 0] == 0


def test_preprocess_grayscale_mode():
    img = np.full((3, 4, 3), 120, dtype=np.uint8)

    gray = utils.preprocess(img, black_and_white=False)

    assert gray.shape == (3, 4)
    assert int(gray[0, 0]) == 120


def test_recognize_cached_reuses_result_within_ttl():
    utils.clear_cache()
    calls = []
    img = np.full((4, 4), 7, dtype=np.uint8)

    def recognize(image):
        calls.append(1)
        return ["block"]

    first, hit1 = utils.recognize_cached(img, recognize, now=100.0)
    second, hit2 = utils.recognize_cached(img, recognize, now=102.0)
    third, hit3 = utils.recognize_cached(img, recognize, now=110.0)

    assert (hit1, hit2, hit3) == (False, True, False)
    assert first == second == third == ["block"]
    assert len(calls) == 2
    assert utils.get_cache_stats()["size"] == 1
    utils.clear_cache()


def test_log_text_writes_to_log_file():
    utils.log_text("hello")

    assert "hello" in Path(utils.LOG_PATH).read_text(encoding="utf-8")


def test_truncate_sample_flattens_whitespace():
    assert utils.truncate_sample("a\n  b\tc", 100) == "a b c"
    assert utils.truncate_sample("abcdef", 3) == "abc"
