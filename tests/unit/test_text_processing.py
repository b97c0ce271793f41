import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from text_processing import (  # noqa: E402
    is_own_card_text,
    looks_like_structural_id_only,
    normalize_snapshot,
    sanitize_text_for_ride_parsing,
)


def test_sanitize_drops_overlay_lines_and_glyphs():
    raw = "  UberX  \n\nR$ 18,50 ↑\nR$/km 3,36\nMotorista Inteligente\n3 min\t(1.1 km)  "

    result = sanitize_text_for_ride_parsing(raw)

    assert result == "UberX\nR$ 18,50\n3 min (1.1 km)"


def test_sanitize_keeps_lines_when_everything_is_noise():
    raw = "Score: 7\nNEUTRO"

    assert sanitize_text_for_ride_parsing(raw) == "Score: 7\nNEUTRO"


def test_sanitize_empty_input():
    assert sanitize_text_for_ride_parsing("") == ""
    assert sanitize_text_for_ride_parsing("   \n  ") == ""


def test_glyph_only_line_disappears():
    assert sanitize_text_for_ride_parsing("↑↓\nR$ 10,00") == "R$ 10,00"


def test_own_card_needs_two_markers():
    assert is_own_card_text("Score: 8\nGanho/h R$ 40")
    assert not is_own_card_text("UberX R$ 18,50 Score")


def test_normalize_snapshot_discards_self_echo():
    own_card = "COMPENSA\nR$/km 2,10\nGanho/h R$ 38,00\nValor da Corrida R$ 22,00"

    assert normalize_snapshot(own_card) is None


def test_normalize_snapshot_returns_sanitized_text():
    assert normalize_snapshot("UberX\n R$ 18,50 ") == "UberX\nR$ 18,50"
    assert normalize_snapshot("  ") is None


def test_structural_id_only_text():
    ids = "com.ubercab.driver:id/rootView com.ubercab.driver:id/map android:id/content"

    assert looks_like_structural_id_only(ids)


def test_structural_ids_with_ride_values_are_not_id_only():
    ids = "com.ubercab.driver:id/rootView com.ubercab.driver:id/fare android:id/content R$ 12,40"

    assert not looks_like_structural_id_only(ids)
    assert not looks_like_structural_id_only("com.x:id/a com.x:id/b aceitar")
    assert not looks_like_structural_id_only("com.x:id/a com.x:id/b")
