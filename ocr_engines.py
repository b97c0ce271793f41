#!/usr/bin/env python3
"""
OCR Engines Module - Multi-Engine OCR Support

Unterstützt zwei OCR-Engines:
1. EasyOCR (primär - Portugiesisch + Englisch, liefert Bounding-Boxes)
2. Tesseract (fallback, image_to_data mit Zeilenpositionen)

Beide liefern RecognizedBlock-Listen, damit der Raster-Pfad die Blöcke nach
ihrer vertikalen Position filtern kann (Angebotskarten sitzen unten).
"""

import re
from typing import List, Optional, Sequence

import numpy as np

from config import OCR_ENGINE, OCR_FALLBACK_ENABLED, OCR_LANGUAGES, TESS_PATH, USE_GPU
from models import RecognizedBlock
from utils import log_debug

# -----------------------
# Engine Initialization Status
# -----------------------
_easyocr_reader = None
_easyocr_available = False

# easyocr language codes -> tesseract traineddata names
_TESSERACT_LANGS = {"pt": "por", "en": "eng"}


def init_easyocr(use_gpu: bool = USE_GPU, lang: Optional[List[str]] = None) -> bool:
    """
    Initialisiert EasyOCR (lazy, der Import lädt torch).

    Args:
        use_gpu: GPU-Acceleration nutzen
        lang: Sprachen-Liste (default: ['pt', 'en'])

    Returns:
        True wenn erfolgreich initialisiert
    """
    global _easyocr_reader, _easyocr_available

    if _easyocr_available and _easyocr_reader is not None:
        return True

    if lang is None:
        lang = list(OCR_LANGUAGES)

    try:
        import easyocr

        _easyocr_reader = easyocr.Reader(
            lang,
            gpu=use_gpu,
            verbose=False,
            quantize=not use_gpu,
            cudnn_benchmark=use_gpu,
        )
        _easyocr_available = True

        mode = "GPU" if use_gpu else "CPU"
        print(f"✅ EasyOCR initialized ({mode} mode, langs={','.join(lang)})")
        return True

    except Exception as e:
        _easyocr_available = False
        print(f"⚠️  EasyOCR initialization failed: {e}")
        log_debug(f"[OCR] EasyOCR init failed: {e}")
        return False


def _bbox_from_points(points) -> tuple:
    xs = [float(p[0]) for p in points]
    ys = [float(p[1]) for p in points]
    return (min(xs), min(ys), max(xs), max(ys))


def ocr_with_easyocr(img, confidence_threshold: float = 0.3) -> List[RecognizedBlock]:
    """
    OCR mit EasyOCR.

    Returns:
        Liste von RecognizedBlock (leer bei Fehler oder ohne Engine)
    """
    if not _easyocr_available or _easyocr_reader is None:
        return []

    try:
        if not hasattr(img, "shape"):
            img = np.array(img)

        result = _easyocr_reader.readtext(img)

        # Format: [(bbox, text, confidence)]
        blocks = []
        for item in result:
            if len(item) != 3:
                continue
            points, text, conf = item
            text = (text or "").strip()
            if conf >= confidence_threshold and text:
                blocks.append(RecognizedBlock(text=text, bbox=_bbox_from_points(points), confidence=float(conf), lines=[text]))
        return blocks

    except Exception as e:
        print(f"⚠️  EasyOCR error: {e}")
        log_debug(f"[OCR] EasyOCR error: {e}")
        return []


def _tesseract_lang(languages: Sequence[str]) -> str:
    return "+".join(_TESSERACT_LANGS.get(code, code) for code in languages)


def ocr_with_tesseract(img, languages: Sequence[str] = tuple(OCR_LANGUAGES), min_conf: float = 0.0) -> List[RecognizedBlock]:
    """
    OCR mit Tesseract (fallback). Wörter werden zu Zeilen-Blöcken gruppiert.
    """
    try:
        import pytesseract
        from PIL import Image

        if TESS_PATH:
            pytesseract.pytesseract.tesseract_cmd = TESS_PATH

        if hasattr(img, "shape"):
            img = Image.fromarray(img)

        data = pytesseract.image_to_data(
            img,
            lang=_tesseract_lang(languages),
            config="--psm 6",  # Assume uniform block of text
            output_type=pytesseract.Output.DICT,
        )
    except Exception as e:
        print(f"⚠️  Tesseract error: {e}")
        log_debug(f"[OCR] Tesseract error: {e}")
        return []

    lines = {}
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        try:
            conf = float(data["conf"][i])
        except (TypeError, ValueError):
            conf = -1.0
        if not word or conf < min_conf:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        left, top = data["left"][i], data["top"][i]
        right, bottom = left + data["width"][i], top + data["height"][i]
        entry = lines.setdefault(key, {"words": [], "confs": [], "bbox": [left, top, right, bottom]})
        entry["words"].append(word)
        entry["confs"].append(conf)
        box = entry["bbox"]
        entry["bbox"] = [min(box[0], left), min(box[1], top), max(box[2], right), max(box[3], bottom)]

    blocks = []
    for entry in lines.values():
        text = " ".join(entry["words"])
        avg_conf = sum(entry["confs"]) / len(entry["confs"]) / 100.0
        blocks.append(RecognizedBlock(text=text, bbox=tuple(float(v) for v in entry["bbox"]), confidence=avg_conf, lines=[text]))
    blocks.sort(key=lambda b: (b.top, b.bbox[0]))
    return blocks


def ocr_auto(img, engine: str = OCR_ENGINE, fallback_enabled: bool = OCR_FALLBACK_ENABLED, confidence_threshold: float = 0.3) -> List[RecognizedBlock]:
    """
    Automatische OCR mit Engine-Fallback.

    Args:
        img: Input image (numpy array oder PIL Image)
        engine: Primäre Engine ('easyocr', 'tesseract')
        fallback_enabled: Fallback zur anderen Engine wenn nichts erkannt wurde

    Returns:
        Erkannte Blöcke der ersten Engine mit Ergebnis
    """
    if engine == "tesseract":
        engines = ["tesseract", "easyocr"]
    else:
        engines = ["easyocr", "tesseract"]

    if not fallback_enabled:
        engines = engines[:1]

    for eng in engines:
        if eng == "easyocr":
            if not _easyocr_available:
                continue
            result = ocr_with_easyocr(img, confidence_threshold)
        else:
            result = ocr_with_tesseract(img)
        if result:
            return result

    return []


def get_available_engines() -> List[str]:
    engines = []
    if _easyocr_available:
        engines.append("easyocr")
    # Tesseract is always available (system-level)
    engines.append("tesseract")
    return engines


def get_engine_info() -> dict:
    return {
        "easyocr": {"available": _easyocr_available, "initialized": _easyocr_reader is not None},
        "tesseract": {"available": True, "initialized": True, "cmd": TESS_PATH or "tesseract"},
    }


# -----------------------
# Block post-processing
# -----------------------
_WHITESPACE_NORMALIZE_PATTERN = re.compile(r"[ \t]+")


def blocks_to_text(blocks: Sequence[RecognizedBlock]) -> str:
    ordered = sorted(blocks, key=lambda b: (b.top, b.bbox[0]))
    lines = []
    for block in ordered:
        for line in block.lines or [block.text]:
            line = _WHITESPACE_NORMALIZE_PATTERN.sub(" ", line).strip()
            if line:
                lines.append(line)
    return "\n".join(lines)


def extract_bottom_portion_text(blocks: Sequence[RecognizedBlock], image_height: float, start_fraction: float) -> str:
    """
    Text der Blöcke, deren vertikale Mitte im unteren Bildbereich liegt.

    Args:
        blocks: Erkannte Blöcke (Koordinaten des vollen Bildes)
        image_height: Höhe des Bildes, <= 0 liefert den gesamten Text
        start_fraction: Anteil der Höhe, ab dem Blöcke behalten werden
    """
    if image_height <= 0:
        return blocks_to_text(blocks)
    threshold = image_height * start_fraction
    return blocks_to_text([b for b in blocks if b.center_y >= threshold])


class EngineTextRecognizer:
    """TextRecognizer backed by ocr_auto; initializes EasyOCR on first use."""

    def __init__(self, engine: str = OCR_ENGINE, fallback_enabled: bool = OCR_FALLBACK_ENABLED, use_gpu: bool = USE_GPU) -> None:
        self.engine = engine
        self.fallback_enabled = fallback_enabled
        self.use_gpu = use_gpu
        self._initialized = False

    def recognize(self, image) -> List[RecognizedBlock]:
        if not self._initialized:
            if self.engine == "easyocr" or self.fallback_enabled:
                init_easyocr(use_gpu=self.use_gpu)
            self._initialized = True
        return ocr_auto(image, engine=self.engine, fallback_enabled=self.fallback_enabled)
