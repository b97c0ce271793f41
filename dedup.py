"""
Fingerprint-based duplicate suppression for emitted offers.

The same card is read several times while it is on screen (event text, node
tree, OCR), so each offer is keyed by its vendor, source and rounded values
and suppressed while the key was seen within the window.
"""

import re
from collections import OrderedDict
from typing import Callable, Optional

from config import OFFER_FINGERPRINT_MAX_SIZE, OFFER_FINGERPRINT_WINDOW
from models import CanonicalRideOffer
from utils import log_debug

_WHITESPACE_PATTERN = re.compile(r"\s+")
_ADDRESS_STRIP_PATTERN = re.compile(r"[^\w\s,.\-]")


def normalize_address_for_fingerprint(address: str) -> str:
    if not address:
        return ""
    lowered = _WHITESPACE_PATTERN.sub(" ", address.lower())
    return _ADDRESS_STRIP_PATTERN.sub("", lowered).strip()


def build_offer_fingerprint(offer: CanonicalRideOffer, source_id: str) -> str:
    """Key of an offer: vendor, source id, rounded values and addresses."""
    pickup_km = offer.pickup_distance_km if offer.pickup_distance_km is not None else -1.0
    return "|".join([
        offer.app_source.value,
        source_id,
        str(int(offer.price * 100)),
        str(int(offer.ride_distance_km * 10)),
        str(int(pickup_km * 10)),
        normalize_address_for_fingerprint(offer.pickup_address),
        normalize_address_for_fingerprint(offer.dropoff_address),
    ])


class OfferFingerprintCache:
    """Insertion-ordered fingerprint cache with TTL and a hard size bound."""

    def __init__(
        self,
        window: float = OFFER_FINGERPRINT_WINDOW,
        max_size: int = OFFER_FINGERPRINT_MAX_SIZE,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.window = window
        self.max_size = max(1, max_size)
        self.clock = clock
        self._seen: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def _prune(self, now: float) -> None:
        expired = [k for k, seen_at in self._seen.items() if now - seen_at > self.window]
        for key in expired:
            del self._seen[key]

    def is_recently_seen(self, key: str, now: Optional[float] = None, record: bool = True) -> bool:
        """
        True when `key` was seen within the window (its timestamp is refreshed).
        Otherwise the key is recorded (unless `record` is False) and False returned.
        """
        if now is None:
            now = self.clock() if self.clock else 0.0
        self._prune(now)

        if key in self._seen:
            self._seen[key] = now
            self._seen.move_to_end(key)
            log_debug(f"[DEDUP] duplicate offer suppressed: {key}")
            return True
        if not record:
            return False

        self._seen[key] = now
        while len(self._seen) > self.max_size:
            self._seen.popitem(last=False)
        return False

    def clear(self) -> None:
        self._seen.clear()
