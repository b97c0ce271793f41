import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from classifier import is_recognized_ride_card
from config import MIN_RIDE_PRICE, ROUTE_PAIR_MIN_CONFIDENCE
from models import AppSource, ExtractionTier, OfferCandidate
from utils import log_debug, to_float

# -----------------------
# Performance: Pre-compiled Regex Patterns
# -----------------------
_PRICE_VALUE = r"(\d{1,4}(?:[,\.]\d{1,2})?)"

# R$ 15,50 / R$15.50 / $ 15,50 / R$ 15 (ignores multipliers like "$1,2~1,8x")
PRICE_PATTERN = re.compile(
    r"(?:R\$|\$)\s*" + _PRICE_VALUE + r"(?![,\.]?\d)(?!\s*(?:[~\-–]\s*\d{1,4}(?:[,\.]\d{1,2})?)\s*x)(?!\s*x)",
    re.IGNORECASE,
)
FALLBACK_PRICE_PATTERN = re.compile(r"\b(\d{1,4}[,\.]\d{2})\b")
PLUS_PRICE_PATTERN = re.compile(r"\+\s*R\$\s*\d")
AVG_PRICE_PER_KM_SUFFIX_PATTERN = re.compile(
    r"^\s*(?:↑|↗|↖|⇧|⤴|🡅|🔺|🟡|\+)?\s*(?:/\s*km|por\s*km\b|km\b)",
    re.IGNORECASE,
)

KM_IN_PAREN_PATTERN = re.compile(r"\(\s*(\d{1,3}(?:[,\.]\d+)?)\s*km\s*\)", re.IGNORECASE)
METERS_IN_PAREN_PATTERN = re.compile(r"\(\s*(\d{2,4})\s*m\s*\)", re.IGNORECASE)
DISTANCE_PATTERN = re.compile(r"(\d{1,3}[,\.]?\d*)\s*km", re.IGNORECASE)
TIME_PATTERN = re.compile(r"(\d{1,3})\s*(?:n?\s*min(?:utos?)?)\b", re.IGNORECASE)
DURATION_PATTERN = re.compile(
    r"(?:(\d{1,2})\s*h(?:oras?)?\s*(?:e\s*)?)?(\d{1,3})\s*min(?:utos?)?\b",
    re.IGNORECASE,
)
MIN_RANGE_PATTERN = re.compile(r"\b\d{1,2}\s*[-–]\s*\d{1,2}\s*(?:n?\s*min(?:utos?)?)\b", re.IGNORECASE)
MIN_VALUE_PATTERN = re.compile(r"\b\d{1,3}\s*(?:n?\s*min(?:utos?)?)\b", re.IGNORECASE)
KM_VALUE_PATTERN = re.compile(r"\b\d{1,3}(?:[\.,]\d+)?\s*km\b", re.IGNORECASE)
# \b after m keeps "30min" out
METERS_VALUE_PATTERN = re.compile(r"\b(\d{1,4})\s*m\b", re.IGNORECASE)
_NUMBER_PATTERN = re.compile(r"\d{1,3}")

USER_RATING_PATTERN = re.compile(
    r"(?:nota|avalia(?:ç|c)ão|rating|estrelas?)\s*[:]?\s*(\d(?:[\.,]\d{1,2})?)"
    r"|\b(\d(?:[\.,]\d{1,2}))\s*[★⭐]"
    r"|[★⭐]\s*(\d(?:[\.,]\d{1,2})?)",
    re.IGNORECASE,
)

_PICKUP_PREFIX = r"(?:buscar|embarque|pickup|retirada|chegar|chegada|até\s+(?:o\s+)?passageiro|ir\s+até)[^\d]{0,20}"
PICKUP_DISTANCE_PATTERN = re.compile(_PICKUP_PREFIX + r"(\d{1,3}(?:[,\.]\d+)?)\s*km", re.IGNORECASE)
PICKUP_TIME_PATTERN = re.compile(_PICKUP_PREFIX + r"(\d{1,3})\s*min(?:utos?)?\b", re.IGNORECASE)
# "X min (Y km)" / "X minutos de distância (Y km)"
PICKUP_INLINE_PATTERN = re.compile(
    r"(\d{1,2})\s*min(?:utos?)?\s*(?:de\s*dist[aâ]ncia)?\s*\(?\s*(\d{1,3}(?:[,\.]\d+)?)\s*km\s*\)?",
    re.IGNORECASE,
)

# 99: "3min (1,1km)"  Uber: "7 minutos (3.0 km) de distância" / "Viagem de 1 h e 43 min (93.7 km)"
ROUTE_PAIR_PATTERN = re.compile(
    r"(?:(\d{1,2})\s*h(?:oras?)?\s*(?:e\s*)?)?(\d{1,3})\s*min(?:utos?)?(?:\s*de\s*dist[aâ]ncia)?"
    r"\s*(?:\(\s*)?(\d{1,3}(?:[,\.]\d+)?)\s*km(?:\s*\))?",
    re.IGNORECASE,
)
# 99 pickup in meters: "3min (843m)"
ROUTE_PAIR_METERS_PATTERN = re.compile(r"(\d{1,3})\s*min(?:utos?)?\s*\(\s*(\d{2,4})\s*m\s*\)", re.IGNORECASE)
# Uber long trips: "Viagem de 1 h 30 (50 km)"
UBER_HOUR_ROUTE_PATTERN = re.compile(
    r"(\d{1,2})\s*h\s*(\d{1,2})?\s*\(\s*(\d{1,3}(?:[,\.]\d+)?)\s*km\s*\)",
    re.IGNORECASE,
)

# -----------------------
# Vendor card patterns
# -----------------------
# "UberX - Exclusivo - R$ XX - 4,93 (274)" / "UberX . Adolescentes - R$ XX"
UBER_CARD_PATTERN = re.compile(
    r"UberX\s*(?:[.\-]\s*(?:Exclusivo|Adolescentes)\s*)?[.\-]\s*R\$\s*" + _PRICE_VALUE,
    re.IGNORECASE,
)
_UBER_MIDDLE_PRICE_PATTERN = re.compile(r"UberX[\s\S]{0,100}?R\$\s*" + _PRICE_VALUE, re.IGNORECASE)
_UBER_LOOSE_PRICE_PATTERN = re.compile(r"UberX[\s\S]{0,120}?R\$\s*" + _PRICE_VALUE, re.IGNORECASE)
# group 1 = ride price, group 2 = average per km (optional)
NINETY_NINE_CORRIDA_LONGA_PATTERN = re.compile(
    r"Corrida\s+Longa\s*(?:-\s*Negocia\s*)?-\s*R\$\s*" + _PRICE_VALUE + r"(?:\s*-\s*R\$\s*" + _PRICE_VALUE + r")?",
    re.IGNORECASE,
)
NINETY_NINE_NEGOCIA_PATTERN = re.compile(r"Negocia\s*[-\s]+R\$\s*" + _PRICE_VALUE, re.IGNORECASE)
NINETY_NINE_PRIORITARIO_PATTERN = re.compile(
    r"Priorit[áa]rio\s*-\s*Pop\s+Expresso\s*[-\s]+R\$\s*" + _PRICE_VALUE + r"(?:\s*-\s*R\$\s*" + _PRICE_VALUE + r")?",
    re.IGNORECASE,
)
NINETY_NINE_ACCEPT_PATTERN = re.compile(r"Aceitar\s+por\s+R\$\s*" + _PRICE_VALUE, re.IGNORECASE)
NINETY_NINE_PRIORITARIO_SIMPLE_PATTERN = re.compile(r"Priorit[áa]rio[\s\S]{0,80}?R\$\s*" + _PRICE_VALUE, re.IGNORECASE)
_NINETY_NINE_STRICT_PATTERNS = (
    NINETY_NINE_CORRIDA_LONGA_PATTERN,
    NINETY_NINE_NEGOCIA_PATTERN,
    NINETY_NINE_PRIORITARIO_PATTERN,
    NINETY_NINE_ACCEPT_PATTERN,
    NINETY_NINE_PRIORITARIO_SIMPLE_PATTERN,
)

# Uber: "4,93 (274)"  99: "4,83 . 287 corridas"
UBER_HEADER_RATING_PATTERN = re.compile(r"(\d[,\.]\d{1,2})\s*\(\s*\d+\s*\)", re.IGNORECASE)
NINETY_NINE_HEADER_RATING_PATTERN = re.compile(r"(\d[,\.]\d{1,2})\s*[.·]\s*\d+\s*corridas?", re.IGNORECASE)

ACTION_KEYWORDS = (
    "aceitar", "accept", "recusar", "decline", "ignorar",
    "novo pedido", "nova viagem", "solicitação", "request",
)
CONTEXT_KEYWORDS = ("embarque", "destino", "passageiro", "pickup", "dropoff", "origem", "entrega")


def contains_any_ignore_case(text: str, keywords: Iterable[str]) -> bool:
    lower = text.lower()
    return any(k in lower for k in keywords)


def has_at_least_two_distance_signals(text: str) -> bool:
    km_count = len(KM_VALUE_PATTERN.findall(text))
    meters_count = len(METERS_VALUE_PATTERN.findall(text))
    return (km_count + meters_count) >= 2


def range_max(match: re.Match) -> Optional[int]:
    values = [int(v) for v in _NUMBER_PATTERN.findall(match.group(0))]
    if not values:
        return None
    return min(300, max(1, max(values)))


def _group_float(match: re.Match, index: int) -> Optional[float]:
    try:
        return to_float(match.group(index))
    except IndexError:
        return None


def _hour_minutes(match: re.Match, hours_group: int = 1, minutes_group: int = 2) -> int:
    hours = int(match.group(hours_group)) if match.group(hours_group) else 0
    minutes = int(match.group(minutes_group)) if match.group(minutes_group) else 0
    return hours * 60 + minutes


# -----------------------
# Preis-Parsing
# -----------------------
def parse_price_from_match(match: re.Match) -> Optional[float]:
    return _group_float(match, 1)


def is_avg_per_km_price_match(text: str, match: re.Match) -> bool:
    """True when the amount is a trailing "R$ 1,29/km" style average, not the fare."""
    suffix = text[match.end():match.end() + 20]
    if AVG_PRICE_PER_KM_SUFFIX_PATTERN.search(suffix):
        return True
    prefix = text[max(0, match.start() - 16):match.start()].lower()
    return "média" in prefix or "media" in prefix


def select_ride_price_match(
    text: str,
    app_source: AppSource,
    price_matches: Sequence[re.Match],
    min_price: float = MIN_RIDE_PRICE,
) -> Optional[re.Match]:
    """
    Choose the ride fare among several currency matches.

    Non-99 layouts take the largest amount. For 99 the per-km average is
    filtered out; when such a companion exists the earliest remaining amount
    is the fare, otherwise the largest.
    """
    valid = [m for m in price_matches if (parse_price_from_match(m) or 0.0) >= min_price]
    if not valid:
        return None

    if app_source != AppSource.NINETY_NINE:
        return max(valid, key=lambda m: parse_price_from_match(m) or 0.0)

    ride_matches = [m for m in valid if not is_avg_per_km_price_match(text, m)]
    if not ride_matches:
        return max(valid, key=lambda m: parse_price_from_match(m) or 0.0)
    if len(valid) > len(ride_matches):
        return min(ride_matches, key=lambda m: m.start())
    return max(ride_matches, key=lambda m: parse_price_from_match(m) or 0.0)


def parse_first_price_from_middle_third(
    text: str,
    app_source: AppSource,
    min_price: float = MIN_RIDE_PRICE,
) -> Optional[float]:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) < 3:
        return None

    middle_start = len(lines) // 3
    middle_end = max(len(lines) * 2 // 3, middle_start + 1)
    middle_text = "\n".join(lines[middle_start:middle_end])

    if app_source == AppSource.UBER:
        uber_match = _UBER_MIDDLE_PRICE_PATTERN.search(middle_text)
        uber_price = to_float(uber_match.group(1)) if uber_match else None
        if uber_price is not None and uber_price >= min_price:
            return uber_price

    valid = [
        m for m in PRICE_PATTERN.finditer(middle_text)
        if (parse_price_from_match(m) or 0.0) >= min_price
    ]
    if not valid:
        return None

    if app_source == AppSource.NINETY_NINE:
        for m in valid:
            if not is_avg_per_km_price_match(middle_text, m):
                return parse_price_from_match(m)

    return parse_price_from_match(valid[0])


def _max_price(pattern: re.Pattern, text: str, min_price: float) -> Optional[float]:
    values = [v for v in (to_float(m.group(1)) for m in pattern.finditer(text)) if v is not None and v >= min_price]
    return max(values) if values else None


def parse_card_price(text: str, app_source: AppSource, min_price: float = MIN_RIDE_PRICE) -> Optional[float]:
    """
    Vendor-specific fare extraction.

    Args:
        text: sanitized card text
        app_source: vendor recognized from the text
        min_price: price floor

    Returns:
        Fare or None when the layout is not recognized
    """
    middle = parse_first_price_from_middle_third(text, app_source, min_price)
    if middle is not None:
        return middle

    if app_source == AppSource.UBER:
        strict = _max_price(UBER_CARD_PATTERN, text, min_price)
        if strict is not None:
            return strict
        return _max_price(_UBER_LOOSE_PRICE_PATTERN, text, min_price)

    if app_source == AppSource.NINETY_NINE:
        strict_values = [
            v for v in (_max_price(p, text, min_price) for p in _NINETY_NINE_STRICT_PATTERNS) if v is not None
        ]
        if strict_values:
            return max(strict_values)
        selected = select_ride_price_match(text, app_source, list(PRICE_PATTERN.finditer(text)), min_price)
        return parse_price_from_match(selected) if selected else None

    return None


def parse_99_avg_per_km(text: str) -> Optional[float]:
    for pattern in (NINETY_NINE_CORRIDA_LONGA_PATTERN, NINETY_NINE_PRIORITARIO_PATTERN):
        match = pattern.search(text)
        if match:
            avg = to_float(match.group(2))
            if avg is not None:
                return avg
    return None


def parse_header_rating(text: str, app_source: AppSource) -> Optional[float]:
    if app_source == AppSource.UBER:
        pattern = UBER_HEADER_RATING_PATTERN
    elif app_source == AppSource.NINETY_NINE:
        pattern = NINETY_NINE_HEADER_RATING_PATTERN
    else:
        return None
    match = pattern.search(text)
    rating = to_float(match.group(1)) if match else None
    if rating is None or not (1.0 <= rating <= 5.0):
        return None
    return rating


# -----------------------
# Distanz / Zeit
# -----------------------
def parse_first_km_value(text: str) -> Optional[float]:
    match = DISTANCE_PATTERN.search(text)
    value = to_float(match.group(1)) if match else None
    if value is None or not (0.1 <= value <= 300.0):
        return None
    return value


def parse_first_min_value(text: str) -> Optional[int]:
    """First minutes value; a range like "1-11 min" yields its maximum."""
    range_match = MIN_RANGE_PATTERN.search(text)
    simple_match = TIME_PATTERN.search(text)

    if range_match and (simple_match is None or range_match.start() <= simple_match.start()):
        value = range_max(range_match)
        if value is not None:
            return value

    if simple_match is None:
        return None
    value = int(simple_match.group(1))
    return value if 1 <= value <= 300 else None


def parse_distance_from_text(text: str) -> Optional[float]:
    match = DISTANCE_PATTERN.search(text)
    value = to_float(match.group(1)) if match else None
    if value is None or not (0.2 <= value <= 300.0):
        return None
    return value


def parse_minutes_from_text(text: str) -> Optional[int]:
    range_match = MIN_RANGE_PATTERN.search(text)
    if range_match:
        value = range_max(range_match)
        if value is not None:
            return value
    min_match = MIN_VALUE_PATTERN.search(text)
    if not min_match:
        return None
    digits = _NUMBER_PATTERN.search(min_match.group(0))
    if not digits:
        return None
    return min(300, max(1, int(digits.group(0))))


def parse_ride_distance_from_text(text: str, price_position: int) -> Optional[float]:
    after_price = text[price_position:] if price_position < len(text) else text

    hour_match = UBER_HOUR_ROUTE_PATTERN.search(after_price)
    if hour_match:
        km = to_float(hour_match.group(3))
        if km is not None and 0.2 <= km <= 500.0:
            return km

    after_match = DISTANCE_PATTERN.search(after_price)
    if after_match:
        value = to_float(after_match.group(1))
        if value is not None and 0.2 <= value <= 300.0:
            return value

    all_values = [
        v for v in (to_float(m.group(1)) for m in DISTANCE_PATTERN.finditer(text))
        if v is not None and 0.2 <= v <= 300.0
    ]
    if len(all_values) >= 2:
        return max(all_values)
    return all_values[0] if all_values else None


def parse_ride_time_from_text(text: str, price_position: int) -> Optional[int]:
    after_price = text[price_position:] if price_position < len(text) else text

    hour_match = UBER_HOUR_ROUTE_PATTERN.search(after_price)
    if hour_match:
        total = _hour_minutes(hour_match)
        if 1 <= total <= 600:
            return total

    range_match = MIN_RANGE_PATTERN.search(after_price)
    if range_match:
        value = range_max(range_match)
        if value is not None:
            return value

    simple_match = TIME_PATTERN.search(after_price)
    if simple_match:
        value = int(simple_match.group(1))
        if 1 <= value <= 300:
            return value

    hour_match_all = UBER_HOUR_ROUTE_PATTERN.search(text)
    if hour_match_all:
        total = _hour_minutes(hour_match_all)
        if 1 <= total <= 600:
            return total

    all_values = [v for v in (int(m.group(1)) for m in TIME_PATTERN.finditer(text)) if 1 <= v <= 300]
    if len(all_values) >= 2:
        return max(all_values)
    return all_values[0] if all_values else None


def parse_pickup_distance_from_text(text: str) -> Optional[float]:
    explicit = PICKUP_DISTANCE_PATTERN.search(text)
    if explicit:
        value = to_float(explicit.group(1))
        if value is not None and 0.1 <= value <= 50.0:
            return value

    price_match = PRICE_PATTERN.search(text)
    price_idx = price_match.start() if price_match else len(text)
    for m in PICKUP_INLINE_PATTERN.finditer(text):
        if m.start() < price_idx:
            km = to_float(m.group(2))
            if km is not None and 0.1 <= km <= 50.0:
                return km
    return None


def parse_pickup_time_from_text(text: str) -> Optional[int]:
    explicit = PICKUP_TIME_PATTERN.search(text)
    if explicit:
        value = int(explicit.group(1))
        if 1 <= value <= 120:
            return value

    price_match = PRICE_PATTERN.search(text)
    price_idx = price_match.start() if price_match else len(text)
    for m in PICKUP_INLINE_PATTERN.finditer(text):
        if m.start() < price_idx:
            minutes = int(m.group(1))
            if 1 <= minutes <= 120:
                return minutes
    return None


def parse_user_rating_from_text(text: str) -> Optional[float]:
    match = USER_RATING_PATTERN.search(text)
    if not match:
        return None
    raw = match.group(1) or match.group(2) or match.group(3)
    rating = to_float(raw)
    if rating is None or not (1.0 <= rating <= 5.0):
        return None
    return rating


# -----------------------
# Route pairs & positional disambiguation
# -----------------------
def parse_ocr_route_pairs(
    text: str,
    min_price: float = MIN_RIDE_PRICE,
    min_confidence: int = ROUTE_PAIR_MIN_CONFIDENCE,
) -> Optional[OfferCandidate]:
    """
    Parse the "min (km)" pairs both vendors print for pickup and ride.

    The first pair is the pickup leg, the second the ride. Pickup legs can be
    printed in meters ("3min (843m)") and long Uber rides use "1 h 30 (50 km)".

    Returns:
        OfferCandidate (tier STRUCTURED) or None below the confidence floor
    """
    route_pairs = list(ROUTE_PAIR_PATTERN.finditer(text))
    meter_pairs = list(ROUTE_PAIR_METERS_PATTERN.finditer(text))
    paren_km = [
        v for v in (to_float(m.group(1)) for m in KM_IN_PAREN_PATTERN.finditer(text))
        if v is not None and 0.1 <= v <= 300.0
    ]
    paren_meters = [
        v for v in (int(m.group(1)) / 1000.0 for m in METERS_IN_PAREN_PATTERN.finditer(text))
        if 0.01 <= v <= 2.0
    ]

    pickup_km: Optional[float] = None
    ride_km: Optional[float] = None
    pickup_min: Optional[int] = None
    ride_min: Optional[int] = None

    if len(paren_km) >= 2:
        pickup_km, ride_km = paren_km[0], paren_km[1]
        if len(route_pairs) >= 2:
            pickup_min, ride_min = _hour_minutes(route_pairs[0]), _hour_minutes(route_pairs[1])
    elif len(paren_km) == 1 and paren_meters:
        pickup_km, ride_km = paren_meters[0], paren_km[0]
        if meter_pairs:
            pickup_min = int(meter_pairs[0].group(1))
        if route_pairs:
            ride_min = _hour_minutes(route_pairs[0])
    elif meter_pairs and route_pairs:
        pickup_km = int(meter_pairs[0].group(2)) / 1000.0
        ride_km = to_float(route_pairs[0].group(3))
        pickup_min = int(meter_pairs[0].group(1))
        ride_min = _hour_minutes(route_pairs[0])
    elif len(route_pairs) >= 2:
        pickup_km = to_float(route_pairs[0].group(3))
        ride_km = to_float(route_pairs[1].group(3))
        pickup_min, ride_min = _hour_minutes(route_pairs[0]), _hour_minutes(route_pairs[1])
    elif len(paren_km) == 1 or len(route_pairs) == 1:
        if paren_km:
            pickup_km = paren_km[0]
        else:
            pickup_km = to_float(route_pairs[0].group(3))
        if route_pairs:
            pickup_min = _hour_minutes(route_pairs[0])

        tail_start = route_pairs[0].end() if route_pairs else 0
        floor = (pickup_km or 0.0) + 0.2
        for m in KM_VALUE_PATTERN.finditer(text[tail_start:]):
            km = to_float(re.sub(r"km", "", m.group(0), flags=re.IGNORECASE).strip())
            if km is not None and km > floor and 0.5 <= km <= 300.0:
                ride_km = km
                break

    if ride_km is None and pickup_km is None:
        log_debug("[ROUTE] no km pair for pickup/ride")
        return None

    prices = [
        v for v in (parse_price_from_match(m) for m in PRICE_PATTERN.finditer(text))
        if v is not None and v >= min_price
    ]
    price = max(prices) if prices else None
    rating = parse_user_rating_from_text(text)

    confidence = 0
    if ride_km is not None:
        confidence += 2
    if pickup_km is not None:
        confidence += 1
    if price is not None:
        confidence += 1
    if rating is not None:
        confidence += 1

    log_debug(
        f"[ROUTE] pickup={pickup_km} km, ride={ride_km} km, price={price}, rating={rating}, conf={confidence}"
    )
    if confidence < min_confidence:
        return None

    return OfferCandidate(
        price=price,
        tier=ExtractionTier.STRUCTURED,
        source="ocr-route-pairs",
        ride_distance_km=ride_km,
        ride_time_min=ride_min if ride_min and 1 <= ride_min <= 600 else None,
        pickup_distance_km=pickup_km,
        pickup_time_min=pickup_min if pickup_min and 1 <= pickup_min <= 120 else None,
        user_rating=rating,
        confidence=confidence,
    )


@dataclass
class PositionalDisambiguation:
    ride_distance_km: Optional[float]
    ride_time_min: Optional[int]
    pickup_distance_km: Optional[float]
    pickup_time_min: Optional[int]
    confidence: int


def disambiguate_by_position(text: str, price_position: int) -> PositionalDisambiguation:
    """Values before the fare belong to the pickup leg, values after it to the ride."""
    before_price = text[:price_position] if price_position > 0 else ""
    after_price = text[price_position:] if price_position < len(text) else text

    pickup_km = parse_first_km_value(before_price)
    pickup_min = parse_first_min_value(before_price)

    hour_match = UBER_HOUR_ROUTE_PATTERN.search(after_price)
    if hour_match:
        ride_min: Optional[int] = _hour_minutes(hour_match)
        ride_km = to_float(hour_match.group(3))
    else:
        ride_km = parse_first_km_value(after_price)
        ride_min = parse_first_min_value(after_price)

    confidence = sum(1 for v in (ride_km, ride_min, pickup_km, pickup_min) if v is not None)
    return PositionalDisambiguation(ride_km, ride_min, pickup_km, pickup_min, confidence)


# -----------------------
# Gating
# -----------------------
def has_required_offer_tokens(text: str, app_source: AppSource) -> bool:
    has_price = bool(PRICE_PATTERN.search(text) or FALLBACK_PRICE_PATTERN.search(text))
    has_km = bool(KM_VALUE_PATTERN.search(text) or METERS_VALUE_PATTERN.search(text))
    has_min = bool(
        MIN_VALUE_PATTERN.search(text) or MIN_RANGE_PATTERN.search(text) or DURATION_PATTERN.search(text)
    )
    has_action_or_context = (
        contains_any_ignore_case(text, ACTION_KEYWORDS) or contains_any_ignore_case(text, CONTEXT_KEYWORDS)
    )

    if app_source == AppSource.NINETY_NINE:
        return has_price and has_km and has_min
    if app_source == AppSource.UBER:
        return has_price and (has_km or has_min or has_action_or_context)
    return has_price and has_at_least_two_distance_signals(text)


def has_strong_ride_signal(text: str, app_source: AppSource = AppSource.UNKNOWN) -> bool:
    if not text.strip():
        return False

    has_price = bool(PRICE_PATTERN.search(text))
    has_two_distances = has_at_least_two_distance_signals(text)
    if is_recognized_ride_card(text) and has_price and has_two_distances:
        return True

    has_action_context = (
        contains_any_ignore_case(text, ACTION_KEYWORDS) or contains_any_ignore_case(text, CONTEXT_KEYWORDS)
    )
    if app_source == AppSource.UBER and has_price and (has_two_distances or has_action_context):
        return True
    if app_source == AppSource.NINETY_NINE and has_price and has_two_distances:
        return True
    return has_price and has_two_distances and has_action_context


_LIKELY_OFFER_THRESHOLDS = {
    # (state change, content change)
    AppSource.UBER: (2, 3),
    AppSource.NINETY_NINE: (3, 4),
    AppSource.UNKNOWN: (3, 4),
}


def ride_offer_confidence(text: str) -> int:
    lower = text.lower()
    action_count = sum(1 for k in ACTION_KEYWORDS if k in lower)
    context_count = sum(1 for k in CONTEXT_KEYWORDS if k in lower)
    score = 0
    score += 3 if action_count else 0
    score += 2 if context_count else 0
    score += 2 if KM_VALUE_PATTERN.search(text) else 0
    score += 2 if has_at_least_two_distance_signals(text) else 0
    score += 1 if "r$" in lower else 0
    score += 1 if PLUS_PRICE_PATTERN.search(text) else 0
    return score


def is_likely_ride_offer(text: str, is_state_change: bool, app_source: AppSource = AppSource.UNKNOWN) -> bool:
    has_price = bool(PRICE_PATTERN.search(text))
    has_two_distances = has_at_least_two_distance_signals(text)
    if is_recognized_ride_card(text) and has_price and has_two_distances:
        return True
    if not has_price:
        return False

    if contains_any_ignore_case(text, ACTION_KEYWORDS):
        return True
    if has_two_distances and KM_VALUE_PATTERN.search(text):
        return True

    state_threshold, content_threshold = _LIKELY_OFFER_THRESHOLDS[app_source]
    threshold = state_threshold if is_state_change else content_threshold
    return ride_offer_confidence(text) >= threshold


def find_price_matches(text: str) -> List[re.Match]:
    return list(PRICE_PATTERN.finditer(text))
