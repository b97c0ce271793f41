"""
Content normalizer: turns raw snapshot text into parseable card text.

Strips the assistant's own overlay lines (so its analysis card is never read
back as a new offer), directional glyphs and whitespace noise.
"""

import re
from typing import Optional

from parsing import (
    FALLBACK_PRICE_PATTERN,
    KM_VALUE_PATTERN,
    MIN_RANGE_PATTERN,
    MIN_VALUE_PATTERN,
    PRICE_PATTERN,
)
from utils import log_debug

OWN_CARD_MARKERS = (
    "COMPENSA",
    "NÃO COMPENSA",
    "NEUTRO",
    "R$/km",
    "Ganho/h",
    "Motorista Inteligente",
    "Score:",
    "ANÁLISE",
    "ANALISE",
    "Média valor/Km",
    "Media valor/Km",
    "Média valor/Hora",
    "Media valor/Hora",
    "Valor da Corrida",
)

# Overlay lines; ride cards never contain them
OWN_OVERLAY_NOISE_TOKENS = (
    "r$/km",
    "r$km",
    "r$/min",
    "r$/h",
    "km total",
    "valor corrida",
    "valor da corrida",
    "media valor/km",
    "média valor/km",
    "media valor/hora",
    "média valor/hora",
    "analise",
    "análise",
    "dentro dos seus parâmetros",
    "dentro dos seus parametros",
    "não compensa",
    "nao compensa",
    "endereço não disponível",
    "endereco não disponível",
    "destino não disponível",
    "destino nao disponível",
    "destino nao disponivel",
    "motorista inteligente",
    "compensa",
    "evitar",
    "neutro",
    "score",
)

_DIRECTIONAL_GLYPHS_PATTERN = re.compile(r"[↑↗↖⇧⤴🡅🔺🟡↓↘↙⤵]")
_INLINE_WHITESPACE_PATTERN = re.compile(r"[\t\x0B\f\r ]+")
_STRUCTURAL_ID_PATTERN = re.compile(r"\S*:id/\S*")
_STRUCTURAL_MIN_TOKENS = 3


def is_own_card_text(text: str) -> bool:
    """Two or more overlay markers mean the text is our own analysis card."""
    if not text:
        return False
    lower = text.lower()
    hits = sum(1 for marker in OWN_CARD_MARKERS if marker.lower() in lower)
    return hits >= 2


def sanitize_text_for_ride_parsing(text: str) -> str:
    if not text or not text.strip():
        return ""

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    kept = [line for line in lines if not any(tok in line.lower() for tok in OWN_OVERLAY_NOISE_TOKENS)]
    if not kept:
        # Nur Noise-Zeilen: lieber unverändert weitergeben als alles verwerfen
        kept = lines

    cleaned = []
    for line in kept:
        line = _DIRECTIONAL_GLYPHS_PATTERN.sub(" ", line)
        line = _INLINE_WHITESPACE_PATTERN.sub(" ", line).strip()
        if line:
            cleaned.append(line)
    return "\n".join(cleaned)


def normalize_snapshot(text: str) -> Optional[str]:
    """
    Sanitize a snapshot text for extraction.

    Returns:
        The sanitized text, or None when nothing usable is left or the text
        is the assistant's own card echoed back.
    """
    sanitized = sanitize_text_for_ride_parsing(text)
    if not sanitized:
        return None
    if is_own_card_text(sanitized) or is_own_card_text(text):
        log_debug("[NORMALIZE] own card text ignored")
        return None
    return sanitized


def looks_like_structural_id_only(text: str) -> bool:
    """Text made of resource ids ("com.app:id/price") without any ride value."""
    if not text:
        return False
    id_tokens = [
        tok for tok in _STRUCTURAL_ID_PATTERN.findall(text)
        if ":id/" in tok or tok.startswith("android:id/")
    ]
    if len(id_tokens) < _STRUCTURAL_MIN_TOKENS:
        return False

    lower = text.lower()
    has_ride_marker = (
        PRICE_PATTERN.search(text)
        or FALLBACK_PRICE_PATTERN.search(text)
        or KM_VALUE_PATTERN.search(text)
        or MIN_VALUE_PATTERN.search(text)
        or MIN_RANGE_PATTERN.search(text)
        or "aceitar" in lower
        or "accept" in lower
    )
    return not has_ride_marker
