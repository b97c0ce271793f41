import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from addresses import extract_addresses, is_noise_line, sanitize_address  # noqa: E402


def test_uber_addresses_below_second_pair():
    text = "UberX\nR$ 18,50\n4,93 (274)\n3 min (1.1 km)\n9 min (5.5 km)\nR. A, 100\nAv. B, 200"

    assert extract_addresses(text) == ("R. A, 100", "Av. B, 200")


def test_99_pickup_between_pairs():
    text = (
        "R$ 14,20\n3min (1,1km)\nRua das Flores, 120 - Centro\n"
        "12min (6,2km)\nAv. Paulista, 1000\nAceitar"
    )

    pickup, dropoff = extract_addresses(text)

    assert pickup == "Rua das Flores, 120 - Centro"
    assert dropoff == "Av. Paulista, 1000"


def test_labelled_fields():
    text = "R$ 20,00\nEmbarque: Rua X 10\nDestino: Shopping Center"

    assert extract_addresses(text) == ("Rua X 10", "Shopping Center")


def test_generic_street_lines():
    text = "R$ 20,00\nR. Augusta 500\nAv. Brasil 20"

    assert extract_addresses(text) == ("R. Augusta 500", "Av. Brasil 20")


def test_no_addresses():
    assert extract_addresses("") == ("", "")
    assert extract_addresses("R$ 20,00") == ("", "")


def test_sanitize_cuts_trailing_ui_text():
    assert sanitize_address("Av. Brasil 20 Aceitar agora") == "Av. Brasil 20"
    assert sanitize_address("  R. A,   100 , ") == "R. A, 100"


def test_noise_lines():
    assert is_noise_line("123,45")
    assert is_noise_line("Perfil Premium")
    assert is_noise_line("km")
    assert not is_noise_line("Rua A")
