"""
Pickup / dropoff address extraction from card text.

Order of attempts:
    1. Segments between the "min (km)" route pairs (pickup after the first
       pair, dropoff after the second)
    2. Labelled fields ("Embarque: ...", "Destino: ...")
    3. Generic street lines ("R. ...", "Av. ...", "M. ...")
"""

import re
from typing import List, Optional, Tuple

from parsing import ROUTE_PAIR_PATTERN

PICKUP_LABEL_PATTERN = re.compile(
    r"(?:embarque|buscar|retirada|origem|local\s+de\s+embarque)[:\s]+([^,\n]{3,60})",
    re.IGNORECASE,
)
DROPOFF_LABEL_PATTERN = re.compile(
    r"(?:destino|para|até|entrega|deixar|local\s+de\s+destino)[:\s]+([^,\n]{3,60})",
    re.IGNORECASE,
)
_ROAD_PREFIX = r"(?:R(?:ua)?\.?|Av(?:enida)?\.?|M(?:arginal)?\.?)"
GENERIC_ADDRESS_PATTERN = re.compile(_ROAD_PREFIX + r"\s+[A-ZÀ-Ú0-9][^\n]{3,60}")
ROAD_ADDRESS_PATTERN = re.compile(_ROAD_PREFIX + r"\s+[^•|]{3,120}", re.IGNORECASE)
VALID_ADDRESS_PREFIX_PATTERN = re.compile(r"^" + _ROAD_PREFIX + r"\s+.+", re.IGNORECASE)

_TRAILING_UI_PATTERN = re.compile(
    r"\b(aceitar|recusar|ignorar|corrida longa|perfil essencial|perfil premium|"
    r"taxa de deslocamento|parada\(s\)|parada)\b.*",
    re.IGNORECASE,
)
_SEGMENT_SEPARATOR_PATTERN = re.compile(r"[•·|\n]+")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_NUMERIC_ONLY_PATTERN = re.compile(r"^\d+[\d\s,\.\-/]*$")
_LETTER_PATTERN = re.compile(r"[^\W\d_]")
_DIGIT_PATTERN = re.compile(r"\d")

_UI_TOKENS = (
    "perfil premium",
    "perfil essencial",
    "corridas",
    "corrida longa",
    "taxa de deslocamento",
    "aceitar",
    "recusar",
    "ignorar",
    "soluções",
)


def sanitize_address(raw: str) -> str:
    cleaned = _TRAILING_UI_PATTERN.sub("", raw)
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned)
    return cleaned.strip(" -•·,;")


def is_noise_line(line: str) -> bool:
    stripped = line.strip()
    if len(stripped) <= 3:
        return True
    if not _LETTER_PATTERN.search(stripped):
        return True
    if _NUMERIC_ONLY_PATTERN.match(stripped):
        return True
    lower = stripped.lower()
    return any(tok in lower for tok in _UI_TOKENS)


def _address_score(line: str) -> int:
    score = 0
    if VALID_ADDRESS_PREFIX_PATTERN.match(line):
        score += 3
    if _DIGIT_PATTERN.search(line):
        score += 1
    if "," in line:
        score += 1
    score += min(len(line), 60) // 20
    return score


def _candidate_lines(segment: str) -> List[str]:
    lines = []
    for raw in segment.splitlines():
        line = sanitize_address(raw)
        if line and not is_noise_line(line):
            lines.append(line)
    return lines


def _best_line(lines: List[str]) -> str:
    best = ""
    best_score = -1
    for line in lines:
        score = _address_score(line)
        if score > best_score:  # Gleichstand: erste Zeile gewinnt
            best, best_score = line, score
    return best


def _segment_fallback(segment: str) -> str:
    flat = _WHITESPACE_PATTERN.sub(" ", _SEGMENT_SEPARATOR_PATTERN.sub(" ", segment)).strip()
    road = ROAD_ADDRESS_PATTERN.search(flat)
    if road:
        candidate = sanitize_address(road.group(0))
        if candidate:
            return candidate
    candidate = sanitize_address(flat)
    if (
        len(candidate) >= 6
        and _LETTER_PATTERN.search(candidate)
        and not _NUMERIC_ONLY_PATTERN.match(candidate)
        and VALID_ADDRESS_PREFIX_PATTERN.match(candidate)
    ):
        return candidate
    return ""


def _address_from_segment(segment: str) -> str:
    lines = _candidate_lines(segment)
    if lines:
        return _best_line(lines)
    return _segment_fallback(segment)


def _addresses_from_route_pairs(text: str) -> Optional[Tuple[str, str]]:
    pairs = list(ROUTE_PAIR_PATTERN.finditer(text))
    if len(pairs) < 2:
        return None

    pickup_segment = text[pairs[0].end():pairs[1].start()]
    next_start = pairs[2].start() if len(pairs) > 2 else len(text)
    dropoff_segment = text[pairs[1].end():next_start]

    pickup = _address_from_segment(pickup_segment)
    dropoff_lines = _candidate_lines(dropoff_segment)

    # Uber prints both addresses below the second pair when the pickup line
    # sits outside the route block
    if not pickup and len(dropoff_lines) >= 2:
        return dropoff_lines[0], dropoff_lines[1]

    dropoff = _best_line(dropoff_lines) if dropoff_lines else _segment_fallback(dropoff_segment)
    if not pickup and not dropoff:
        return None
    return pickup, dropoff


def extract_addresses(text: str) -> Tuple[str, str]:
    """
    Returns:
        (pickup_address, dropoff_address), empty strings when unknown
    """
    if not text:
        return "", ""

    from_pairs = _addresses_from_route_pairs(text)
    if from_pairs:
        return from_pairs

    pickup_match = PICKUP_LABEL_PATTERN.search(text)
    dropoff_match = DROPOFF_LABEL_PATTERN.search(text)
    if pickup_match and dropoff_match:
        return sanitize_address(pickup_match.group(1)), sanitize_address(dropoff_match.group(1))

    generic = [sanitize_address(m.group(0)) for m in GENERIC_ADDRESS_PATTERN.finditer(text)]
    generic = [g for g in generic if g]
    if len(generic) >= 2:
        return generic[0], generic[1]
    if len(generic) == 1:
        dropoff = sanitize_address(dropoff_match.group(1)) if dropoff_match else ""
        return generic[0], dropoff

    return "", ""
