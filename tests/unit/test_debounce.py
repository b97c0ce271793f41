import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from _fakes import FakeClock, ManualScheduler  # noqa: E402
from debounce import Debouncer  # noqa: E402


def _setup(delay=0.25):
    clock = FakeClock()
    scheduler = ManualScheduler(clock)
    return Debouncer(scheduler, delay), scheduler


def test_burst_delivers_only_last_payload():
    debouncer, scheduler = _setup()
    delivered = []

    debouncer.submit("first", delivered.append)
    scheduler.advance(0.1)
    debouncer.submit("second", delivered.append)
    scheduler.advance(0.1)
    debouncer.submit("third", delivered.append)

    assert debouncer.pending
    assert debouncer.pending_payload == "third"

    scheduler.advance(0.3)

    assert delivered == ["third"]
    assert not debouncer.pending


def test_timer_restarts_on_submit():
    debouncer, scheduler = _setup()
    delivered = []

    debouncer.submit(1, delivered.append)
    scheduler.advance(0.2)
    debouncer.submit(2, delivered.append)
    scheduler.advance(0.2)

    assert delivered == []

    scheduler.advance(0.06)
    assert delivered == [2]


def test_cancel_drops_pending_payload():
    debouncer, scheduler = _setup()
    delivered = []

    debouncer.submit("x", delivered.append)
    debouncer.cancel()
    scheduler.advance(1.0)

    assert delivered == []
    assert debouncer.pending_payload is None
    assert scheduler.pending_timers == []


def test_negative_delay_is_clamped():
    debouncer, scheduler = _setup(delay=-1.0)
    delivered = []

    debouncer.submit("now", delivered.append)
    scheduler.advance(0.0)

    assert delivered == ["now"]
