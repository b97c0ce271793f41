import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from _fakes import FakeClock  # noqa: E402
from models import EventKind  # noqa: E402
from observer import ScreenPollingObserver  # noqa: E402

CARD = "UberX\nR$ 18,50\n3 min (1.1 km)\n9 min (5.5 km)"


class _Capture:
    def grab(self):
        raise AssertionError("not used")


class _Recognizer:
    def recognize(self, image):
        return []


def _observer():
    return ScreenPollingObserver(_Recognizer(), capture=_Capture(), clock=FakeClock())


def test_first_text_is_window_appeared():
    observer = _observer()

    snapshot = observer.process_text(CARD)

    assert snapshot.kind == EventKind.WINDOW_APPEARED
    assert snapshot.source == "com.ubercab.driver"
    assert snapshot.origin == "all-screen"
    assert snapshot.text == CARD
    assert snapshot.timestamp == 1000.0


def test_unchanged_text_emits_nothing():
    observer = _observer()
    observer.process_text(CARD)

    assert observer.process_text(CARD + "\n") is None


def test_changed_text_is_content_changed():
    observer = _observer()
    observer.process_text(CARD)

    snapshot = observer.process_text(CARD.replace("18,50", "19,00"))

    assert snapshot.kind == EventKind.CONTENT_CHANGED


def test_screen_clearing_emits_empty_snapshot_for_previous_vendor():
    observer = _observer()
    observer.process_text(CARD)

    snapshot = observer.process_text("")

    assert snapshot.kind == EventKind.CONTENT_CHANGED
    assert snapshot.text == ""
    assert snapshot.source == "com.ubercab.driver"
    assert observer.process_text("") is None


def test_unknown_vendor_uses_default_source():
    observer = _observer()

    assert observer.process_text("Tela inicial").source == "screen"


def test_window_visibility_follows_last_poll():
    observer = _observer()
    assert not observer.monitored_window_visible()

    observer.process_text("Negocia - R$ 25,00\n5min (2km)")
    assert observer.monitored_window_visible()
    assert observer.source_for_text("Negocia - R$ 25,00") == "com.app99.driver"

    observer.process_text("Tela inicial")
    assert not observer.monitored_window_visible()
