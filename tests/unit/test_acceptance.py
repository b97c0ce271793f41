import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from acceptance import AcceptanceOutcome, AcceptanceStatus, AcceptanceTracker  # noqa: E402
from models import AppSource  # noqa: E402


def _tracker(window=30.0):
    accepted = []
    return AcceptanceTracker(on_accepted=accepted.append, window=window), accepted


def test_idle_tracker_ignores_signals():
    tracker, accepted = _tracker()

    assert tracker.on_click("Aceitar", 0.0) is None
    assert tracker.on_text("a caminho", 0.0) is None
    assert tracker.status == AcceptanceStatus.IDLE
    assert accepted == []


def test_click_within_window_accepts_once():
    tracker, accepted = _tracker()
    tracker.register_offer(AppSource.UBER, now=100.0)

    assert tracker.status == AcceptanceStatus.OFFER_PENDING
    assert tracker.on_click("Aceitar", 110.0) == AcceptanceOutcome.ACCEPTED
    assert tracker.on_click("Aceitar", 111.0) is None
    assert accepted == [AppSource.UBER]
    assert tracker.status == AcceptanceStatus.ACCEPTED
    assert tracker.trip_in_progress


def test_click_after_window_expires_offer():
    tracker, accepted = _tracker()
    tracker.register_offer(AppSource.UBER, now=100.0)

    assert tracker.on_click("Aceitar", 131.0) == AcceptanceOutcome.EXPIRED
    assert accepted == []
    assert tracker.status == AcceptanceStatus.IDLE


def test_click_patterns_are_vendor_specific():
    tracker, accepted = _tracker()
    tracker.register_offer(AppSource.NINETY_NINE, now=0.0)

    assert tracker.on_click("Ver perfil", 1.0) is None
    assert tracker.on_click("Aceitar por R$ 14,90", 2.0) == AcceptanceOutcome.ACCEPTED
    assert accepted == [AppSource.NINETY_NINE]


def test_acceptance_by_screen_text():
    tracker, accepted = _tracker()
    tracker.register_offer(AppSource.UBER, now=0.0)

    assert tracker.on_text("A caminho do passageiro", 5.0) == AcceptanceOutcome.ACCEPTED
    assert accepted == [AppSource.UBER]


def test_rejection_is_checked_before_acceptance():
    tracker, accepted = _tracker()
    tracker.register_offer(AppSource.UBER, now=0.0)

    outcome = tracker.on_text("Corrida perdida - a caminho do próximo", 5.0)

    assert outcome == AcceptanceOutcome.REJECTED
    assert accepted == []
    assert tracker.status == AcceptanceStatus.IDLE
    assert not tracker.trip_in_progress


def test_expire_if_stale():
    tracker, _ = _tracker(window=10.0)
    tracker.register_offer(AppSource.UBER, now=0.0)

    assert not tracker.expire_if_stale(10.0)
    assert tracker.expire_if_stale(10.5)
    assert not tracker.expire_if_stale(11.0)


def test_trip_mode_suppresses_navigation_texts():
    tracker, _ = _tracker()
    tracker.register_offer(AppSource.UBER, now=0.0)
    tracker.on_click("Aceitar", 1.0)

    assert tracker.should_suppress_because_trip_in_progress("Vire à direita em 200 m", 5.0, strong_signal=False)
    assert tracker.should_suppress_because_trip_in_progress("R. A, 100\nAv. B, 200", 6.0, strong_signal=False)
    assert not tracker.should_suppress_because_trip_in_progress("R$ 12,00 Aceitar", 7.0, strong_signal=False)
    assert tracker.trip_in_progress


def test_strong_signal_ends_trip_mode():
    tracker, _ = _tracker()
    tracker.register_offer(AppSource.UBER, now=0.0)
    tracker.on_click("Aceitar", 1.0)

    assert not tracker.should_suppress_because_trip_in_progress("vire", 5.0, strong_signal=True)
    assert not tracker.trip_in_progress


def test_trip_mode_times_out():
    tracker = AcceptanceTracker(window=30.0, trip_max_duration=60.0)
    tracker.register_offer(AppSource.UBER, now=0.0)
    tracker.on_click("Aceitar", 1.0)

    assert not tracker.should_suppress_because_trip_in_progress("vire", 100.0, strong_signal=False)
    assert not tracker.trip_in_progress


def test_trip_end_text_clears_trip_mode():
    tracker, _ = _tracker()
    tracker.register_offer(AppSource.UBER, now=0.0)
    tracker.on_click("Aceitar", 1.0)

    tracker.update_trip_mode_by_text("Viagem finalizada")

    assert not tracker.trip_in_progress


def test_new_offer_resets_state():
    tracker, _ = _tracker()
    tracker.register_offer(AppSource.UBER, now=0.0)
    tracker.on_click("Aceitar", 1.0)

    tracker.register_offer(AppSource.NINETY_NINE, now=50.0)

    assert tracker.status == AcceptanceStatus.OFFER_PENDING
    assert not tracker.trip_in_progress
