"""
Source classifier: which driver app produced a text snapshot.

OCR text carries no window identity, so the vendor is inferred from the
service-tier names and pricing rows printed on the offer card itself.
"""

import re
from typing import Optional

from rapidfuzz import fuzz, process

from config import (
    ALL_MONITORED_PACKAGES,
    FUZZY_MARKER_THRESHOLD,
    NINETY_NINE_PACKAGES,
    OWN_PACKAGE,
    UBER_PACKAGES,
)
from models import AppSource

_UBER_CARD_MARKERS = [
    re.compile(r"\buberx\b", re.IGNORECASE),
    re.compile(r"\buber\s*comfort\b", re.IGNORECASE),
    re.compile(r"\buber\s*black\b", re.IGNORECASE),
    re.compile(r"\buber\s*flash\b", re.IGNORECASE),
    re.compile(r"\buber\s*connect\b", re.IGNORECASE),
    re.compile(r"\buber\s*moto\b", re.IGNORECASE),
    re.compile(r"\buber\s*green\b", re.IGNORECASE),
]

_NINETY_NINE_CARD_MARKERS = [
    re.compile(r"\bcorrida\s+longa\b", re.IGNORECASE),
    re.compile(r"\bnegocia\b", re.IGNORECASE),
    re.compile(r"\bpriorit[áa]rio\b", re.IGNORECASE),
    re.compile(r"\baceitar\s+por\s+r\$", re.IGNORECASE),
    re.compile(r"\btaxa\s+de\s+deslocamento\b", re.IGNORECASE),
    re.compile(r"\bpre[cç]o\s*x\s*\d+(?:[\.,]\d+)?\b", re.IGNORECASE),
    re.compile(r"\br\$\s*\d{1,3}(?:[\.,]\d{1,2})?\s*/\s*km\b", re.IGNORECASE),
    re.compile(r"\bn[aã]o\s+afeta\s+a\s*ta", re.IGNORECASE),
    re.compile(r"\bperfil\s+premium\b", re.IGNORECASE),
    re.compile(r"\b\d+[\.,]?\d*\s*[·\.]\s*\+?\d+\s*corridas\b", re.IGNORECASE),
    re.compile(r"\+?\b\d+\s*corridas\b", re.IGNORECASE),
]

# Longer literal markers survive OCR typos well enough for fuzzy matching;
# short ones like "uberx" would collide with noise.
_FUZZY_MARKERS = {
    "uber comfort": AppSource.UBER,
    "uber black": AppSource.UBER,
    "uber green": AppSource.UBER,
    "uber flash": AppSource.UBER,
    "corrida longa": AppSource.NINETY_NINE,
    "taxa de deslocamento": AppSource.NINETY_NINE,
    "perfil premium": AppSource.NINETY_NINE,
}


def _fuzzy_vendor(text: str, threshold: int) -> AppSource:
    markers = list(_FUZZY_MARKERS)
    for line in text.lower().splitlines():
        line = line.strip()
        if len(line) < 5:
            continue
        hit = process.extractOne(line, markers, scorer=fuzz.partial_ratio, score_cutoff=threshold)
        if hit:
            return _FUZZY_MARKERS[hit[0]]
    return AppSource.UNKNOWN


def detect_app_source_from_text(text: str, fuzzy_threshold: Optional[int] = FUZZY_MARKER_THRESHOLD) -> AppSource:
    """
    Klassifiziert den Kartentext (Uber-Marker haben Vorrang vor 99-Markern).

    Args:
        text: sanitized snapshot text
        fuzzy_threshold: rapidfuzz partial_ratio cutoff, None disables the fuzzy pass

    Returns:
        AppSource.UBER, AppSource.NINETY_NINE or AppSource.UNKNOWN
    """
    if not text or not text.strip():
        return AppSource.UNKNOWN

    if any(p.search(text) for p in _UBER_CARD_MARKERS):
        return AppSource.UBER
    if any(p.search(text) for p in _NINETY_NINE_CARD_MARKERS):
        return AppSource.NINETY_NINE
    if fuzzy_threshold is None:
        return AppSource.UNKNOWN
    return _fuzzy_vendor(text, fuzzy_threshold)


def is_recognized_ride_card(text: str) -> bool:
    return detect_app_source_from_text(text) != AppSource.UNKNOWN


def is_own_source(source_id: str) -> bool:
    return source_id == OWN_PACKAGE or source_id.startswith(OWN_PACKAGE + ".")


def detect_app_source(source_id: str) -> AppSource:
    """Vendor hint from the source identifier (package or window name)."""
    if not source_id:
        return AppSource.UNKNOWN
    lower = source_id.lower()
    if source_id in UBER_PACKAGES or any(source_id.startswith(p) for p in UBER_PACKAGES) or "uber" in lower:
        return AppSource.UBER
    if (
        source_id in NINETY_NINE_PACKAGES
        or any(source_id.startswith(p) for p in NINETY_NINE_PACKAGES)
        or "99" in lower
        or "ninenine" in lower
    ):
        return AppSource.NINETY_NINE
    return AppSource.UNKNOWN


def is_monitored_source(source_id: str) -> bool:
    if not source_id or is_own_source(source_id):
        return False
    if source_id in ALL_MONITORED_PACKAGES or any(source_id.startswith(p) for p in ALL_MONITORED_PACKAGES):
        return True

    lower = source_id.lower()
    looks_like_vendor = "uber" in lower or "99" in lower or "ninenine" in lower
    looks_like_driver_app = "driver" in lower or "taxi" in lower or "motorista" in lower
    return looks_like_vendor and looks_like_driver_app
