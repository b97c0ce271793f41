"""
Tiered field extraction as a chain of extractors.

Each extractor turns the normalized card text (and, when present, the
labelled nodes of a structured snapshot) into an OfferCandidate. The chain
runs them in priority order and stops as soon as one candidate carries a
price, the ride distance and the ride time; later tiers only fill gaps.

    1. RoutePairExtractor      "min (km)" pairs            STRUCTURED
    2. LabeledNodeExtractor    node labels                 STRUCTURED
    3. CardPatternExtractor    vendor card layouts         POSITIONAL
    4. PositionalExtractor     generic R$ + context score  POSITIONAL
    5. RasterFallbackExtractor asks for a screen capture   RASTER
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from config import PipelineConfig
from models import AppSource, ExtractionTier, LabeledNode, OfferCandidate
from parsing import (
    DISTANCE_PATTERN,
    FALLBACK_PRICE_PATTERN,
    MIN_RANGE_PATTERN,
    PRICE_PATTERN,
    TIME_PATTERN,
    disambiguate_by_position,
    find_price_matches,
    parse_card_price,
    parse_header_rating,
    parse_ocr_route_pairs,
    parse_price_from_match,
    parse_ride_distance_from_text,
    parse_ride_time_from_text,
    range_max,
    select_ride_price_match,
)
from selector import select_best_offer_candidate
from utils import log_debug, to_float

_EXTRACTION_SOURCES = {
    "notification": "notification",
    "event-text": "event-text",
    "all-screen": "all-screen",
    "ocr-fallback": "ocr",
    "ocr": "ocr",
    "keyword-search": "keyword-search",
    "node-search": "node-search",
    "event-source": "event-source",
    "windows": "windows",
}


def normalize_extraction_source(origin: str) -> str:
    return _EXTRACTION_SOURCES.get(origin, "node-tree")


@dataclass
class ExtractionContext:
    text: str
    app_source: AppSource
    origin: str = "event-text"
    nodes: Sequence[LabeledNode] = ()
    config: PipelineConfig = field(default_factory=PipelineConfig)
    allow_raster: bool = True
    request_raster: Optional[Callable[[str], bool]] = None
    raster_trigger: str = "parse-miss"
    card_price: Optional[float] = None

    @property
    def extraction_source(self) -> str:
        return normalize_extraction_source(self.origin)


def is_complete(candidate: Optional[OfferCandidate]) -> bool:
    return (
        candidate is not None
        and candidate.price is not None
        and candidate.ride_distance_km is not None
        and candidate.ride_time_min is not None
    )


class OfferExtractor:
    name = "base"
    tier = ExtractionTier.POSITIONAL

    def should_run(self, ctx: ExtractionContext, found: Sequence[OfferCandidate]) -> bool:
        return True

    def extract(self, ctx: ExtractionContext) -> Optional[OfferCandidate]:
        raise NotImplementedError


def _has_price(found: Sequence[OfferCandidate]) -> bool:
    return any(c.price is not None for c in found)


# -----------------------
# Tier 1: route pairs
# -----------------------
class RoutePairExtractor(OfferExtractor):
    name = "route-pairs"
    tier = ExtractionTier.STRUCTURED

    def extract(self, ctx: ExtractionContext) -> Optional[OfferCandidate]:
        candidate = parse_ocr_route_pairs(
            ctx.text,
            min_price=ctx.config.min_ride_price,
            min_confidence=ctx.config.route_pair_min_confidence,
        )
        if candidate is None:
            return None
        # 99 prints the per-km average next to the fare; the card layout knows which is which
        if (
            ctx.app_source == AppSource.NINETY_NINE
            and ctx.card_price is not None
            and ctx.card_price >= ctx.config.min_ride_price
        ):
            candidate.price = ctx.card_price
        if candidate.user_rating is None:
            candidate.user_rating = parse_header_rating(ctx.text, ctx.app_source)
        return candidate


# -----------------------
# Tier 1: labelled nodes
# -----------------------
_NODE_CATEGORY_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("price", re.compile(r"(?:fare|price|amount|valor|tarifa|earning|ganho|cost|surge|promo)")),
    ("pickup_distance", re.compile(r"(?:pickup_dist|eta_dist|arrival_dist|buscar_dist)")),
    ("pickup_time", re.compile(
        r"(?:pickup_eta|pickup_time|arrival|eta_time|eta_min|chegada|buscar_time|time_to_pickup)"
    )),
    ("ride_distance", re.compile(r"(?:trip_dist|ride_dist|route_dist|trip_length)")),
    ("ride_time", re.compile(
        r"(?:trip_time|ride_time|trip_duration|duration|ride_eta|trip_eta|estimated_time)"
    )),
    ("address", re.compile(r"(?:address|location|origin|destination|destino|pickup_loc|dropoff|endereco)")),
    ("action", re.compile(r"(?:accept|decline|reject|cancel|aceitar|recusar|ignorar|pular|skip)")),
)
_DROPOFF_LABEL_PATTERN = re.compile(r"(?:destination|destino|dropoff)")


def classify_node_label(label: str) -> str:
    """Category of a node by the suffix of its label ("com.app:id/fare_text" -> "price")."""
    if not label or not label.strip():
        return "unknown"
    lower = label.lower().rsplit("/", 1)[-1]
    for category, pattern in _NODE_CATEGORY_PATTERNS[:4]:
        if pattern.search(lower):
            return category
    if "distance" in lower and "pickup" not in lower and "eta" not in lower:
        return "ride_distance"
    for category, pattern in _NODE_CATEGORY_PATTERNS[4:]:
        if pattern.search(lower):
            return category
    return "unknown"


def _node_km(text: str) -> Optional[float]:
    match = DISTANCE_PATTERN.search(text)
    return to_float(match.group(1)) if match else None


def _node_minutes(text: str, allow_range: bool = True) -> Optional[int]:
    match = TIME_PATTERN.search(text)
    if match:
        return int(match.group(1))
    if allow_range:
        range_match = MIN_RANGE_PATTERN.search(text)
        if range_match:
            return range_max(range_match)
    return None


class LabeledNodeExtractor(OfferExtractor):
    name = "labeled-nodes"
    tier = ExtractionTier.STRUCTURED

    def should_run(self, ctx: ExtractionContext, found: Sequence[OfferCandidate]) -> bool:
        return bool(ctx.nodes)

    def extract(self, ctx: ExtractionContext) -> Optional[OfferCandidate]:
        nodes = [n for n in ctx.nodes if n.text and n.text.strip()]
        if not nodes:
            return None

        min_price = ctx.config.min_ride_price
        result = OfferCandidate(price=None, tier=self.tier, source="node-semantic")
        price_index = -1
        addresses: List[Tuple[str, str]] = []

        for idx, node in enumerate(nodes):
            category = classify_node_label(node.label)
            text = node.text
            if category == "price" and result.price is None:
                match = PRICE_PATTERN.search(text) or FALLBACK_PRICE_PATTERN.search(text)
                value = to_float(match.group(1)) if match else None
                if value is not None and value >= min_price:
                    result.price = value
                    price_index = idx
                    result.confidence += 2
            elif category == "ride_distance" and result.ride_distance_km is None:
                value = _node_km(text)
                if value is not None and 0.2 <= value <= 300.0:
                    result.ride_distance_km = value
                    result.confidence += 2
            elif category == "ride_time" and result.ride_time_min is None:
                value = _node_minutes(text, allow_range=False)
                if value is not None and 1 <= value <= 300:
                    result.ride_time_min = value
                    result.confidence += 2
            elif category == "pickup_distance" and result.pickup_distance_km is None:
                value = _node_km(text)
                if value is not None and 0.1 <= value <= 50.0:
                    result.pickup_distance_km = value
                    result.confidence += 2
            elif category == "pickup_time" and result.pickup_time_min is None:
                value = _node_minutes(text)
                if value is not None and 1 <= value <= 120:
                    result.pickup_time_min = value
                    result.confidence += 2
            elif category == "address":
                addresses.append((node.label.lower(), text.strip()))

        if result.price is not None and (result.ride_distance_km is None or result.ride_time_min is None):
            self._fill_from_unknown_nodes(nodes, price_index, result)

        self._assign_addresses(addresses, result)

        if result.price is None and result.confidence < 2:
            return None
        log_debug(
            f"[NODES] price={result.price} ride={result.ride_distance_km} km/{result.ride_time_min} min "
            f"pickup={result.pickup_distance_km} km conf={result.confidence}"
        )
        return result

    @staticmethod
    def _fill_from_unknown_nodes(nodes: Sequence[LabeledNode], price_index: int, result: OfferCandidate) -> None:
        # Unbenannte Knoten: vor dem Preis = Abholung, danach = Fahrt
        for idx, node in enumerate(nodes):
            if idx == price_index or classify_node_label(node.label) != "unknown":
                continue
            km = _node_km(node.text)
            minutes = _node_minutes(node.text)
            if idx < price_index:
                if km is not None and result.pickup_distance_km is None and 0.1 <= km <= 50.0:
                    result.pickup_distance_km = km
                    result.confidence += 1
                if minutes is not None and result.pickup_time_min is None and 1 <= minutes <= 120:
                    result.pickup_time_min = minutes
                    result.confidence += 1
            else:
                if km is not None and result.ride_distance_km is None and 0.2 <= km <= 300.0:
                    result.ride_distance_km = km
                    result.confidence += 1
                if minutes is not None and result.ride_time_min is None and 1 <= minutes <= 300:
                    result.ride_time_min = minutes
                    result.confidence += 1

    @staticmethod
    def _assign_addresses(addresses: Sequence[Tuple[str, str]], result: OfferCandidate) -> None:
        for label, text in addresses:
            if _DROPOFF_LABEL_PATTERN.search(label):
                if not result.dropoff_address:
                    result.dropoff_address = text
            elif not result.pickup_address:
                result.pickup_address = text
            elif not result.dropoff_address:
                result.dropoff_address = text


# -----------------------
# Tier 2: vendor card layouts
# -----------------------
class CardPatternExtractor(OfferExtractor):
    name = "card-pattern"
    tier = ExtractionTier.POSITIONAL

    def should_run(self, ctx: ExtractionContext, found: Sequence[OfferCandidate]) -> bool:
        return ctx.card_price is not None

    def extract(self, ctx: ExtractionContext) -> Optional[OfferCandidate]:
        price = ctx.card_price
        if price is None or price < ctx.config.min_ride_price:
            return None

        first_price = PRICE_PATTERN.search(ctx.text)
        position = first_price.start() if first_price else 0
        positional = disambiguate_by_position(ctx.text, position)

        ride_km = positional.ride_distance_km
        if ride_km is None:
            ride_km = parse_ride_distance_from_text(ctx.text, position)
        ride_min = positional.ride_time_min
        if ride_min is None:
            ride_min = parse_ride_time_from_text(ctx.text, position)

        return OfferCandidate(
            price=price,
            tier=self.tier,
            source=f"{ctx.app_source.display_name.lower()}-card-pattern",
            ride_distance_km=ride_km,
            ride_time_min=ride_min,
            pickup_distance_km=positional.pickup_distance_km,
            pickup_time_min=positional.pickup_time_min,
            user_rating=parse_header_rating(ctx.text, ctx.app_source),
            confidence=positional.confidence,
        )


# -----------------------
# Tier 2: generic currency matches
# -----------------------
class PositionalExtractor(OfferExtractor):
    name = "positional"
    tier = ExtractionTier.POSITIONAL

    def should_run(self, ctx: ExtractionContext, found: Sequence[OfferCandidate]) -> bool:
        return not _has_price(found)

    def extract(self, ctx: ExtractionContext) -> Optional[OfferCandidate]:
        matches = find_price_matches(ctx.text)
        if not matches:
            log_debug("[POSITIONAL] no R$ price in text")
            return None

        min_price = ctx.config.min_ride_price
        selected = select_ride_price_match(ctx.text, ctx.app_source, matches, min_price)
        if selected is None:
            log_debug("[POSITIONAL] no valid price after per-km filter")
            return None

        best = select_best_offer_candidate(ctx.text, matches, ctx.config.candidate_min_score)
        if best is None:
            return None

        selected_price = parse_price_from_match(selected)
        price = max(best.price, selected_price if selected_price is not None else best.price)
        if price < min_price:
            log_debug(f"[POSITIONAL] price too low for a ride: R$ {price}")
            return None

        positional = disambiguate_by_position(ctx.text, selected.start())
        ride_km = best.ride_distance_km
        if ride_km is None:
            ride_km = positional.ride_distance_km
        if ride_km is None:
            ride_km = parse_ride_distance_from_text(ctx.text, selected.start())

        ride_min = best.ride_time_min
        if ride_min is None:
            ride_min = positional.ride_time_min

        pickup_km = best.pickup_distance_km
        if pickup_km is None:
            pickup_km = positional.pickup_distance_km
        pickup_min = best.pickup_time_min
        if pickup_min is None:
            pickup_min = positional.pickup_time_min

        return OfferCandidate(
            price=price,
            tier=self.tier,
            source=ctx.extraction_source,
            ride_distance_km=ride_km,
            ride_time_min=ride_min,
            pickup_distance_km=pickup_km,
            pickup_time_min=pickup_min,
            user_rating=best.user_rating,
            confidence=best.score,
        )


# -----------------------
# Tier 3: raster fallback
# -----------------------
class RasterFallbackExtractor(OfferExtractor):
    """Produces no candidate; asks the raster path for a screen capture instead."""

    name = "raster"
    tier = ExtractionTier.RASTER

    def should_run(self, ctx: ExtractionContext, found: Sequence[OfferCandidate]) -> bool:
        return (
            ctx.allow_raster
            and ctx.request_raster is not None
            and ctx.extraction_source != "ocr"
            and not _has_price(found)
        )

    def extract(self, ctx: ExtractionContext) -> Optional[OfferCandidate]:
        if ctx.request_raster is not None:
            ctx.request_raster(ctx.raster_trigger)
        return None


def default_extractors() -> List[OfferExtractor]:
    return [
        RoutePairExtractor(),
        LabeledNodeExtractor(),
        CardPatternExtractor(),
        PositionalExtractor(),
        RasterFallbackExtractor(),
    ]


class ExtractorChain:
    def __init__(self, extractors: Optional[Sequence[OfferExtractor]] = None) -> None:
        self.extractors = list(extractors) if extractors is not None else default_extractors()

    def run(self, ctx: ExtractionContext) -> List[OfferCandidate]:
        """Candidates in chain order; stops once one of them is complete."""
        if ctx.card_price is None:
            ctx.card_price = parse_card_price(ctx.text, ctx.app_source, ctx.config.min_ride_price)

        found: List[OfferCandidate] = []
        for extractor in self.extractors:
            if not extractor.should_run(ctx, found):
                continue
            candidate = extractor.extract(ctx)
            if candidate is None:
                continue
            log_debug(f"[EXTRACT] {extractor.name}: price={candidate.price} conf={candidate.confidence}")
            found.append(candidate)
            if is_complete(candidate):
                break
        return found
