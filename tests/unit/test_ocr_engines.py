import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import ocr_engines  # noqa: E402
from models import RecognizedBlock  # noqa: E402


def _block(text, top, left=0.0, lines=None):
    return RecognizedBlock(text=text, bbox=(left, top, left + 40.0, top + 10.0), lines=lines or [])


def test_blocks_are_ordered_top_to_bottom_then_left_to_right():
    blocks = [_block("b", 50.0, left=30.0), _block("c", 80.0), _block("a", 50.0)]

    assert ocr_engines.blocks_to_text(blocks) == "a\nb\nc"


def test_block_lines_are_normalized():
    blocks = [_block("ignored", 0.0, lines=["R$   18,50", "  ", "UberX\t Comfort"])]

    assert ocr_engines.blocks_to_text(blocks) == "R$ 18,50\nUberX Comfort"


def test_bottom_portion_filters_by_block_center():
    blocks = [_block("top", 10.0), _block("edge", 25.0), _block("bottom", 70.0)]

    assert ocr_engines.extract_bottom_portion_text(blocks, 100.0, 0.3) == "edge\nbottom"
    assert ocr_engines.extract_bottom_portion_text(blocks, 100.0, 0.0) == "top\nedge\nbottom"
    assert ocr_engines.extract_bottom_portion_text(blocks, 0.0, 0.3) == "top\nedge\nbottom"


def test_ocr_auto_falls_back_to_tesseract(monkeypatch):
    calls = []
    monkeypatch.setattr(ocr_engines, "_easyocr_available", True)
    monkeypatch.setattr(ocr_engines, "ocr_with_easyocr", lambda img, thr: calls.append("easyocr") or [])
    monkeypatch.setattr(ocr_engines, "ocr_with_tesseract", lambda img: calls.append("tesseract") or [_block("x", 0.0)])

    result = ocr_engines.ocr_auto(object(), engine="easyocr", fallback_enabled=True)

    assert calls == ["easyocr", "tesseract"]
    assert result[0].text == "x"


def test_ocr_auto_without_fallback(monkeypatch):
    monkeypatch.setattr(ocr_engines, "_easyocr_available", True)
    monkeypatch.setattr(ocr_engines, "ocr_with_easyocr", lambda img, thr: [])
    monkeypatch.setattr(ocr_engines, "ocr_with_tesseract", lambda img: [_block("x", 0.0)])

    assert ocr_engines.ocr_auto(object(), engine="easyocr", fallback_enabled=False) == []


def test_unavailable_easyocr_is_skipped(monkeypatch):
    monkeypatch.setattr(ocr_engines, "_easyocr_available", False)
    monkeypatch.setattr(ocr_engines, "ocr_with_tesseract", lambda img: [_block("t", 0.0)])

    assert ocr_engines.ocr_auto(object(), engine="easyocr")[0].text == "t"
    assert ocr_engines.get_available_engines() == ["tesseract"]
