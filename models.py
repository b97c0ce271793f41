"""
Datenmodell der Ride-Offer-Pipeline.

Snapshots come in from the content observer, candidates are produced by the
extractor tiers and the canonical offer is the only record leaving the core.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


class AppSource(enum.Enum):
    UBER = "Uber"
    NINETY_NINE = "99"
    UNKNOWN = "Unknown"

    @property
    def display_name(self) -> str:
        return self.value


class EventKind(enum.Enum):
    WINDOW_APPEARED = "window_appeared"
    CONTENT_CHANGED = "content_changed"
    NOTIFICATION = "notification"
    CLICK = "click"


class ExtractionTier(enum.IntEnum):
    STRUCTURED = 1
    POSITIONAL = 2
    RASTER = 3


@dataclass(frozen=True)
class LabeledNode:
    """One (label, text) pair from a structured source, in traversal order."""

    label: str
    text: str


@dataclass(frozen=True)
class RawSnapshot:
    kind: EventKind
    source: str
    text: str = ""
    nodes: Tuple[LabeledNode, ...] = ()
    timestamp: Optional[float] = None
    origin: str = "event-text"

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not any(n.text.strip() for n in self.nodes)


@dataclass
class OfferCandidate:
    price: Optional[float]
    tier: ExtractionTier
    source: str
    ride_distance_km: Optional[float] = None
    ride_time_min: Optional[int] = None
    pickup_distance_km: Optional[float] = None
    pickup_time_min: Optional[int] = None
    user_rating: Optional[float] = None
    pickup_address: str = ""
    dropoff_address: str = ""
    confidence: int = 0


@dataclass(frozen=True)
class CanonicalRideOffer:
    app_source: AppSource
    price: float
    ride_distance_km: float
    ride_time_min: int
    pickup_distance_km: Optional[float]
    pickup_time_min: Optional[int]
    user_rating: Optional[float]
    pickup_address: str
    dropoff_address: str
    extraction_source: str
    raw_text: str
    timestamp: float
    distance_estimated: bool = False
    time_estimated: bool = False
    confidence: int = 0


@dataclass(frozen=True)
class RecognizedBlock:
    """Text block returned by an OCR engine, bbox as (x1, y1, x2, y2)."""

    text: str
    bbox: Tuple[float, float, float, float]
    confidence: float = 1.0
    lines: List[str] = field(default_factory=list)

    @property
    def center_y(self) -> float:
        return (self.bbox[1] + self.bbox[3]) / 2.0

    @property
    def top(self) -> float:
        return self.bbox[1]
