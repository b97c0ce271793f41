import datetime
import hashlib
import os
import re
import threading
import time
from typing import Callable, Dict, Optional, Sequence, Tuple

import cv2
import mss
import numpy as np

from config import DIAGNOSTIC_LOG_THROTTLE, LOG_PATH, get_debug_mode

# -----------------------
# Performance: Screenshot-Hash-Caching (statische Karten nicht doppelt OCRen)
# -----------------------
_recognition_cache: Dict[str, Tuple[float, list]] = {}  # {hash: (timestamp, blocks)}
_cache_lock = threading.Lock()
CACHE_TTL = 5.0
MAX_CACHE_SIZE = 20

LOG_ROTATE_BYTES = 10 * 1024 * 1024


def log_text(text: str) -> None:
    """Append a text block to the log, rotating to .old at 10 MB."""
    try:
        if os.path.exists(LOG_PATH) and os.path.getsize(LOG_PATH) > LOG_ROTATE_BYTES:
            os.replace(LOG_PATH, f"{LOG_PATH}.old")
        with open(LOG_PATH, "a", encoding="utf-8") as f:
            f.write(f"{datetime.datetime.now().isoformat()}:\n{text}\n\n")
    except OSError:
        pass


def log_debug(message: str) -> None:
    """Append a timestamped [DEBUG] line (development diagnostics)."""
    if not get_debug_mode(True):
        return
    try:
        ts = datetime.datetime.now().isoformat()
        with open(LOG_PATH, "a", encoding="utf-8") as f:
            f.write(f"{ts} [DEBUG] {message}\n")
    except OSError:
        pass


class DiagnosticThrottle:
    """Lets one message per key through every `interval` seconds."""

    def __init__(self, clock: Callable[[], float], interval: float = DIAGNOSTIC_LOG_THROTTLE, max_keys: int = 500):
        self.clock = clock
        self.interval = interval
        self.max_keys = max_keys
        self._last_logged: Dict[str, float] = {}

    def should_log(self, key: str) -> bool:
        now = self.clock()
        last = self._last_logged.get(key)
        if last is not None and now - last < self.interval:
            return False
        self._last_logged[key] = now
        if len(self._last_logged) > self.max_keys:
            oldest = min(self._last_logged.items(), key=lambda kv: kv[1])[0]
            del self._last_logged[oldest]
        return True

    def log(self, key: str, message: str) -> bool:
        if not self.should_log(key):
            return False
        log_debug(message)
        return True


def to_float(raw: Optional[str]) -> Optional[float]:
    """Parse "18,50" / "18.50" / "5." style OCR numbers, None when unusable."""
    if raw is None:
        return None
    cleaned = raw.strip().replace(",", ".")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def clamp(value, low, high):
    return max(low, min(high, value))


def make_content_hash(*parts) -> str:
    payload = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def truncate_sample(text: str, limit: int) -> str:
    return re.sub(r"\s+", " ", text[:limit]).strip()


# -----------------------
# Bildaufnahme & Vorverarbeitung
# -----------------------
def capture_region(region: Sequence[int]) -> np.ndarray:
    x1, y1, x2, y2 = region
    with mss.mss() as sct:
        monitor = {"left": x1, "top": y1, "width": x2 - x1, "height": y2 - y1}
        arr = np.array(sct.grab(monitor))  # BGRA
    return cv2.cvtColor(arr, cv2.COLOR_BGRA2BGR)


def to_grayscale(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img.copy()
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def binarize_for_ocr(img: np.ndarray) -> np.ndarray:
    """Grayscale + threshold at the mean luminance (dark text on light cards)."""
    gray = to_grayscale(img)
    threshold = float(gray.mean())
    _, binary = cv2.threshold(gray, threshold, 255, cv2.THRESH_BINARY)
    return binary


def preprocess(img: np.ndarray, black_and_white: bool = True) -> np.ndarray:
    if black_and_white:
        return binarize_for_ocr(img)
    return to_grayscale(img)


def recognize_cached(img: np.ndarray, recognize: Callable[[np.ndarray], list], now: Optional[float] = None) -> Tuple[list, bool]:
    """
    Run `recognize` with an MD5 screenshot cache (TTL 5s, max 20 entries).

    Returns:
        (blocks, cache_hit)
    """
    now = time.time() if now is None else now
    img_hash = hashlib.md5(img.tobytes()).hexdigest()

    with _cache_lock:
        entry = _recognition_cache.get(img_hash)
        if entry:
            cached_at, blocks = entry
            if now - cached_at < CACHE_TTL:
                log_debug(f"[CACHE HIT] Hash={img_hash[:8]}... age={now - cached_at:.2f}s")
                return blocks, True
            del _recognition_cache[img_hash]

    blocks = recognize(img)

    with _cache_lock:
        _recognition_cache[img_hash] = (now, blocks)
        if len(_recognition_cache) > MAX_CACHE_SIZE:
            oldest = min(_recognition_cache.items(), key=lambda kv: kv[1][0])[0]
            del _recognition_cache[oldest]
            log_debug(f"[CACHE] Evicted oldest entry (cache size: {len(_recognition_cache)})")
    return blocks, False


def clear_cache() -> None:
    with _cache_lock:
        _recognition_cache.clear()


def get_cache_stats() -> Dict[str, float]:
    with _cache_lock:
        return {"size": len(_recognition_cache), "max_size": MAX_CACHE_SIZE, "ttl": CACHE_TTL}
