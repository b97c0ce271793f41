"""
Candidate selection: choose the fare among competing currency matches, merge
candidates from several extractor tiers and apply the last sanity checks
(scale correction, minimal evidence, estimates).
"""

import re
from dataclasses import dataclass, fields
from typing import List, Optional, Sequence, Tuple

from config import PipelineConfig
from models import ExtractionTier, OfferCandidate
from parsing import (
    ACTION_KEYWORDS,
    CONTEXT_KEYWORDS,
    KM_IN_PAREN_PATTERN,
    PLUS_PRICE_PATTERN,
    PRICE_PATTERN,
    contains_any_ignore_case,
    has_at_least_two_distance_signals,
    parse_distance_from_text,
    parse_minutes_from_text,
    parse_pickup_distance_from_text,
    parse_pickup_time_from_text,
    parse_price_from_match,
    parse_user_rating_from_text,
)
from utils import clamp, log_debug, to_float

CONTEXT_RADIUS = 250
AFTER_WINDOW = 300
BEFORE_WINDOW = 200

# Lower rank wins when merging
_SOURCE_PRIORITY = {
    "ocr-route-pairs": 0,
    "node-semantic": 1,
}
_TIER_PRIORITY = {
    ExtractionTier.STRUCTURED: 1,
    ExtractionTier.POSITIONAL: 3,
    ExtractionTier.RASTER: 4,
}

_MERGEABLE_FIELDS = (
    "ride_distance_km",
    "ride_time_min",
    "pickup_distance_km",
    "pickup_time_min",
    "user_rating",
)


@dataclass
class ScoredPriceCandidate:
    price: float
    match_start: int
    ride_distance_km: Optional[float]
    ride_time_min: Optional[int]
    pickup_distance_km: Optional[float]
    pickup_time_min: Optional[int]
    user_rating: Optional[float]
    score: int


def _score_price_match(text: str, match: re.Match) -> Optional[ScoredPriceCandidate]:
    price = parse_price_from_match(match)
    if price is None:
        return None

    start, end = match.start(), match.end()
    context = text[max(0, start - CONTEXT_RADIUS):end + CONTEXT_RADIUS]
    after = text[end:end + AFTER_WINDOW]
    before = text[max(0, start - BEFORE_WINDOW):start]

    after_km = parse_distance_from_text(after)
    ride_km = after_km if after_km is not None else parse_distance_from_text(context)
    after_min = parse_minutes_from_text(after)
    ride_min = after_min if after_min is not None else parse_minutes_from_text(context)

    before_km = parse_distance_from_text(before)
    if after_km is not None and before_km is not None and before_km != after_km:
        pickup_km: Optional[float] = before_km
    else:
        pickup_km = parse_pickup_distance_from_text(text)

    before_min = parse_minutes_from_text(before)
    if after_min is not None and before_min is not None and before_min != after_min:
        pickup_min: Optional[int] = before_min
    else:
        pickup_min = parse_pickup_time_from_text(text)

    rating = parse_user_rating_from_text(context)
    if rating is None:
        rating = parse_user_rating_from_text(text)

    score = 0
    score += 3 if ride_km is not None else 0
    score += 3 if ride_min is not None else 0
    score += 2 if contains_any_ignore_case(context, ACTION_KEYWORDS) else 0
    score += 2 if contains_any_ignore_case(context, CONTEXT_KEYWORDS) else 0
    score += 2 if PLUS_PRICE_PATTERN.search(context) else 0
    score += 1 if rating is not None else 0
    score += 1 if pickup_km is not None else 0

    return ScoredPriceCandidate(price, start, ride_km, ride_min, pickup_km, pickup_min, rating, score)


def select_best_offer_candidate(
    text: str,
    matches: Sequence[re.Match],
    min_score: int = 3,
) -> Optional[ScoredPriceCandidate]:
    """
    Score every currency match by the ride data around it.

    Returns:
        Highest scoring candidate (first wins on ties), or None when only one
        match exists and it scores below `min_score`
    """
    scored = [c for c in (_score_price_match(text, m) for m in matches) if c is not None]
    if not scored:
        return None

    best = scored[0]
    for candidate in scored[1:]:
        if candidate.score > best.score:
            best = candidate

    if best.score < min_score and len(scored) == 1:
        log_debug(f"[SELECT] single price {best.price} rejected (score={best.score})")
        return None
    return best


def _merge_rank(candidate: OfferCandidate) -> int:
    rank = _SOURCE_PRIORITY.get(candidate.source)
    if rank is not None:
        return rank
    if candidate.source.endswith("-card-pattern"):
        return 2
    return _TIER_PRIORITY.get(candidate.tier, 5)


def merge_candidates(candidates: Sequence[OfferCandidate]) -> Optional[OfferCandidate]:
    """
    Merge tier results into one candidate.

    The highest-priority candidate with a price is the base; missing fields
    are filled from the others in priority order. Confidence is summed over
    every candidate that contributed.
    """
    ordered = sorted((c for c in candidates if c is not None), key=_merge_rank)
    priced = [c for c in ordered if c.price is not None and c.price > 0]
    if not priced:
        return None

    base = priced[0]
    merged = OfferCandidate(**{f.name: getattr(base, f.name) for f in fields(OfferCandidate)})
    contributors = {id(base)}

    for other in ordered:
        if other is base:
            continue
        for name in _MERGEABLE_FIELDS:
            if getattr(merged, name) is None and getattr(other, name) is not None:
                setattr(merged, name, getattr(other, name))
                contributors.add(id(other))
        if not merged.pickup_address and other.pickup_address:
            merged.pickup_address = other.pickup_address
            contributors.add(id(other))
        if not merged.dropoff_address and other.dropoff_address:
            merged.dropoff_address = other.dropoff_address
            contributors.add(id(other))

    merged.confidence = sum(c.confidence for c in ordered if id(c) in contributors)
    return merged


# -----------------------
# Sanity checks
# -----------------------
def _reference_distance(text: str, ride_distance_km: Optional[float]) -> Optional[float]:
    if ride_distance_km is not None and ride_distance_km > 0:
        return ride_distance_km
    paren = [
        v for v in (to_float(m.group(1)) for m in KM_IN_PAREN_PATTERN.finditer(text))
        if v is not None
    ]
    if len(paren) >= 2 and 0.2 <= paren[1] <= 300.0:
        return paren[1]
    in_range = [v for v in paren if 0.2 <= v <= 300.0]
    return in_range[-1] if in_range else None


def normalize_suspicious_price_scale(
    price: float,
    text: str,
    ride_distance_km: Optional[float],
    config: Optional[PipelineConfig] = None,
) -> float:
    """
    Undo a lost decimal separator ("1850" for "18,50").

    Only prices >= scale_check_min_price are checked. When the rate per km is
    above scale_max_price_per_km, price/10 and price/100 are tried and the one
    whose rate lies in the plausible band closest to the reference rate wins.
    """
    config = config or PipelineConfig()
    if price < config.scale_check_min_price:
        return price

    reference = _reference_distance(text, ride_distance_km)
    if reference is None:
        return price
    if price / reference <= config.scale_max_price_per_km:
        return price

    low, high = config.scale_plausible_band
    options: List[Tuple[float, float]] = []
    for divisor in (10.0, 100.0):
        scaled = round(price / divisor, 2)
        if scaled < config.min_ride_price:
            continue
        rate = scaled / reference
        if low <= rate <= high:
            options.append((abs(rate - config.scale_reference_rate), scaled))

    if not options:
        return price
    corrected = min(options)[1]
    log_debug(f"[SCALE] price {price} -> {corrected} (ref={reference} km)")
    return corrected


def has_minimal_evidence(text: str, price: float) -> bool:
    if price is None or price <= 0:
        return False
    if not PRICE_PATTERN.search(text):
        return False
    return has_at_least_two_distance_signals(text)


def estimate_distance(price: float, price_per_km: float = 1.50) -> float:
    return clamp(price / price_per_km, 1.0, 50.0)


def estimate_time(distance_km: float, min_per_km: int = 3) -> int:
    return max(int(distance_km * min_per_km), 5)
