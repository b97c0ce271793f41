"""
Acceptance tracking after an offer has been emitted.

After an offer is shown the driver has a short window to accept it. Clicks on
the accept button and screen texts that only appear once a trip started
("a caminho", "iniciar viagem", ...) mark it as accepted; expiry and
rejection texts drop it. While a trip is running, offer-looking navigation
texts are suppressed until the trip ends.
"""

import enum
import re
from dataclasses import dataclass
from typing import Callable, Optional

from config import ACCEPTANCE_DETECTION_WINDOW, TRIP_MODE_MAX_DURATION
from models import AppSource
from parsing import ACTION_KEYWORDS
from utils import log_debug

ACCEPTANCE_SIGNALS = (
    # Português
    "a caminho", "indo buscar", "navegando", "em andamento",
    "corrida aceita", "viagem aceita", "aceita com sucesso",
    "ir até o passageiro", "buscar passageiro",
    "iniciar viagem", "iniciar corrida",
    "chegar ao passageiro", "chegando",
    "rota iniciada", "navegação iniciada",
    "iniciar navegação", "navegar",
    "dirigir até", "ir ao embarque",
    # English (Uber)
    "heading to", "navigating to", "navigate to",
    "trip accepted", "ride accepted",
    "start trip", "start navigation",
    "picking up", "on the way",
    "arriving", "drive to pickup",
)

REJECTION_SIGNALS = (
    "corrida perdida", "oferta expirou", "tempo esgotado",
    "trip missed", "offer expired", "timed out",
    "próxima corrida", "next trip",
    "você está online", "procurando viagens",
    "procurando corridas", "corrida cancelada",
    "viagem cancelada", "trip cancelled", "ride cancelled",
)

TRIP_END_SIGNALS = REJECTION_SIGNALS + (
    "corrida finalizada", "viagem finalizada", "finalizar corrida",
)

NAVIGATION_SIGNALS = (
    "a caminho", "navegando", "navegação", "rota", "rota iniciada", "iniciar navegação",
    "dirija", "vire", "continue", "chegar ao passageiro", "chegando", "viagem em andamento",
    "corrida em andamento", "tempo estimado", "trânsito",
)

CLICK_PATTERNS = {
    AppSource.UBER: ("aceitar", "accept", "confirmar viagem", "confirm trip"),
    # 99: the clickable offer card itself
    AppSource.NINETY_NINE: ("aceitar", "accept", "aceitar por", "confirmar"),
}

_ROAD_LIKE_PATTERN = re.compile(r"\b(?:r(?:ua)?\.?|av(?:enida)?\.?|m(?:arginal)?\.?)\s+[^\W_]", re.IGNORECASE)


class AcceptanceStatus(enum.Enum):
    IDLE = "idle"
    OFFER_PENDING = "offer_pending"
    ACCEPTED = "accepted"


class AcceptanceOutcome(enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass
class AcceptanceState:
    app_source: Optional[AppSource] = None
    offer_timestamp: float = 0.0
    accepted: bool = False
    trip_in_progress: bool = False
    trip_started_at: float = 0.0

    @property
    def status(self) -> AcceptanceStatus:
        if self.app_source is None:
            return AcceptanceStatus.IDLE
        if self.accepted:
            return AcceptanceStatus.ACCEPTED
        return AcceptanceStatus.OFFER_PENDING


class AcceptanceTracker:
    """
    One pending offer at a time.

    Args:
        on_accepted: called with the vendor once an offer is accepted
        window: seconds after the offer in which acceptance is detected
        trip_max_duration: trip mode expires after this many seconds
    """

    def __init__(
        self,
        on_accepted: Optional[Callable[[AppSource], None]] = None,
        window: float = ACCEPTANCE_DETECTION_WINDOW,
        trip_max_duration: float = TRIP_MODE_MAX_DURATION,
    ) -> None:
        self.on_accepted = on_accepted
        self.window = window
        self.trip_max_duration = trip_max_duration
        self.state = AcceptanceState()

    @property
    def status(self) -> AcceptanceStatus:
        return self.state.status

    @property
    def trip_in_progress(self) -> bool:
        return self.state.trip_in_progress

    def register_offer(self, app_source: AppSource, now: float) -> None:
        # Neue Oferte auf dem Schirm: eine vorherige Fahrt läuft nicht mehr
        self.state = AcceptanceState(app_source=app_source, offer_timestamp=now)
        log_debug(f"[ACCEPT] offer registered for {app_source.display_name}")

    def clear_offer(self) -> None:
        trip_in_progress, trip_started_at = self.state.trip_in_progress, self.state.trip_started_at
        self.state = AcceptanceState(trip_in_progress=trip_in_progress, trip_started_at=trip_started_at)

    def _end_trip(self) -> None:
        self.state.trip_in_progress = False
        self.state.trip_started_at = 0.0

    def _awaiting_decision(self) -> bool:
        return self.state.app_source is not None and not self.state.accepted

    def expire_if_stale(self, now: float) -> bool:
        """Drop a pending offer older than the window. True when it expired."""
        if not self._awaiting_decision():
            return False
        if now - self.state.offer_timestamp <= self.window:
            return False
        log_debug(f"[ACCEPT] offer expired without acceptance ({now - self.state.offer_timestamp:.1f}s)")
        self.clear_offer()
        return True

    def on_click(self, text: str, now: float) -> Optional[AcceptanceOutcome]:
        if not self._awaiting_decision():
            return None
        if self.expire_if_stale(now):
            return AcceptanceOutcome.EXPIRED

        clicked = (text or "").strip().lower()
        patterns = CLICK_PATTERNS.get(self.state.app_source)
        if not clicked or not patterns:
            return None
        if any(p in clicked for p in patterns):
            self._mark_accepted("click", clicked, now)
            return AcceptanceOutcome.ACCEPTED
        log_debug(f"[ACCEPT] click ignored: '{clicked[:80]}'")
        return None

    def on_text(self, text: str, now: float) -> Optional[AcceptanceOutcome]:
        """Rejection phrases are checked before acceptance phrases."""
        if not self._awaiting_decision():
            return None
        if self.expire_if_stale(now):
            return AcceptanceOutcome.EXPIRED
        if not text or not text.strip():
            return None

        lower = text.lower()
        if any(s in lower for s in REJECTION_SIGNALS):
            log_debug(f"[ACCEPT] rejection signal: '{text[:80]}'")
            self._end_trip()
            self.clear_offer()
            return AcceptanceOutcome.REJECTED
        if any(s in lower for s in ACCEPTANCE_SIGNALS):
            self._mark_accepted("screen", text, now)
            return AcceptanceOutcome.ACCEPTED
        return None

    def _mark_accepted(self, method: str, signal_text: str, now: float) -> None:
        app_source = self.state.app_source
        if app_source is None:
            return
        self.state.accepted = True
        self.state.trip_in_progress = True
        self.state.trip_started_at = now
        log_debug(f"[ACCEPT] ride accepted via {method} on {app_source.display_name}: '{signal_text[:80]}'")
        if self.on_accepted is not None:
            self.on_accepted(app_source)

    # -----------------------
    # Trip mode
    # -----------------------
    def update_trip_mode_by_text(self, text: str) -> None:
        if not self.state.trip_in_progress or not text or not text.strip():
            return
        lower = text.lower()
        if any(s in lower for s in TRIP_END_SIGNALS):
            self._end_trip()
            log_debug("[ACCEPT] trip mode cleared by end/cancel signal")

    def should_suppress_because_trip_in_progress(self, text: str, now: float, strong_signal: bool) -> bool:
        """
        Heuristic: while a trip runs, navigation screens look like offers
        (addresses, km, minutes). A strong offer signal ends trip mode.
        """
        if not self.state.trip_in_progress:
            return False
        if strong_signal:
            self._end_trip()
            return False
        if self.state.trip_started_at and now - self.state.trip_started_at > self.trip_max_duration:
            self._end_trip()
            return False

        lower = text.lower()
        if any(k in lower for k in ACTION_KEYWORDS):
            return False
        if any(s in lower for s in NAVIGATION_SIGNALS):
            return True
        return len(_ROAD_LIKE_PATTERN.findall(text)) >= 2
