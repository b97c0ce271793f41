import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    return max(minimum, int(os.getenv(name, str(default)) or str(default)))


# -----------------------
# Konfiguration
# -----------------------
LOG_PATH = os.getenv("RIDE_TRACKER_LOG", "ride_ocr_log.txt")
TESS_PATH = os.getenv("TESSERACT_CMD", "")
USE_EASYOCR = True
USE_GPU = os.getenv("RIDE_TRACKER_GPU", "0") == "1"
OCR_ENGINE = os.getenv("RIDE_TRACKER_OCR_ENGINE", "easyocr")  # 'easyocr' | 'tesseract'
OCR_FALLBACK_ENABLED = True
OCR_LANGUAGES = ["pt", "en"]

# Screen region of the mirrored phone screen (x1, y1, x2, y2)
DEFAULT_REGION = (0, 0, 540, 1170)
POLL_INTERVAL = _env_float("RIDE_TRACKER_POLL_INTERVAL", 0.5, minimum=0.1)

_DEBUG_MODE: Optional[bool] = (
    None if os.getenv("RIDE_TRACKER_DEBUG") is None else os.getenv("RIDE_TRACKER_DEBUG") == "1"
)


def get_debug_mode(default: bool = False) -> bool:
    if _DEBUG_MODE is None:
        return bool(default)
    return _DEBUG_MODE


def set_debug_mode(enabled: bool) -> None:
    global _DEBUG_MODE
    _DEBUG_MODE = bool(enabled)


# -----------------------
# Monitored apps
# -----------------------
OWN_PACKAGE = "com.example.motoristainteligente"
UBER_PACKAGES = frozenset({
    "com.ubercab.driver",
    "com.ubercab",
    "com.ubercab.eats",
    "com.uber.driver",
    "com.uber",
})
NINETY_NINE_PACKAGES = frozenset({
    "cc.nineninetaxi.driver",
    "com.nineninetaxi.driver",
    "com.driver.go99",
    "cc.nineninetaxi",
    "com.nineninetaxi",
    "br.com.driver99",
    "com.go99.driver",
    "com.go99",
    "br.com.99",
    "app.99",
    "com.app99.driver",
    "com.app99",
})
ALL_MONITORED_PACKAGES = UBER_PACKAGES | NINETY_NINE_PACKAGES

# -----------------------
# Pipeline timings (Sekunden)
# -----------------------
MIN_RIDE_PRICE = 3.0
DEBOUNCE_DELAY = _env_float("RIDE_TRACKER_DEBOUNCE", 0.25)
CARD_RENDER_DELAY = _env_float("RIDE_TRACKER_RENDER_DELAY", 0.7)  # Karten-Animation abwarten
OCR_FALLBACK_MIN_INTERVAL = 1.2
EMPTY_TREE_OCR_COOLDOWN = 0.7
OFFER_FINGERPRINT_WINDOW = 90.0
OFFER_FINGERPRINT_MAX_SIZE = _env_int("RIDE_TRACKER_FINGERPRINT_MAX", 200)
ACCEPTANCE_DETECTION_WINDOW = 30.0
TRIP_MODE_MAX_DURATION = 2 * 60 * 60.0
DIAGNOSTIC_LOG_THROTTLE = 10.0
EVENT_LOG_THROTTLE = 1.2
NOTIFICATION_COOLDOWN = 1.0
WINDOW_STATE_COOLDOWN = 1.0
WINDOW_CONTENT_COOLDOWN = 0.8
RAW_TEXT_SAMPLE_MAX = 500
DEBUG_TEXT_SAMPLE_MAX = 220

# OCR crop: offer cards are anchored near the bottom of the screen
OCR_BOTTOM_START_FRACTION = 0.3
OCR_BOTTOM_START_FRACTION_99 = 0.0
RASTER_WORKER_COUNT = _env_int("RIDE_TRACKER_RASTER_WORKERS", 1)

# -----------------------
# Heuristik-Schwellen (empirisch, nicht hergeleitet)
# -----------------------
SCALE_CHECK_MIN_PRICE = 100.0
SCALE_MAX_PRICE_PER_KM = 60.0
SCALE_PLAUSIBLE_BAND = (0.6, 35.0)
SCALE_REFERENCE_RATE = 2.5
CANDIDATE_MIN_SCORE = 3
ROUTE_PAIR_MIN_CONFIDENCE = 4
FUZZY_MARKER_THRESHOLD = 90
ESTIMATE_PRICE_PER_KM = 1.50
ESTIMATE_MIN_PER_KM = 3


@dataclass(frozen=True)
class PipelineConfig:
    """Every tunable of the ride offer pipeline in one place."""

    min_ride_price: float = MIN_RIDE_PRICE
    debounce_delay: float = DEBOUNCE_DELAY
    card_render_delay: float = CARD_RENDER_DELAY
    raster_cooldown: float = OCR_FALLBACK_MIN_INTERVAL
    empty_tree_raster_cooldown: float = EMPTY_TREE_OCR_COOLDOWN
    raster_enabled: bool = True
    crop_start_fraction: float = OCR_BOTTOM_START_FRACTION
    crop_start_fraction_99: float = OCR_BOTTOM_START_FRACTION_99
    fingerprint_window: float = OFFER_FINGERPRINT_WINDOW
    fingerprint_max_size: int = OFFER_FINGERPRINT_MAX_SIZE
    acceptance_window: float = ACCEPTANCE_DETECTION_WINDOW
    trip_max_duration: float = TRIP_MODE_MAX_DURATION
    event_cooldowns: Dict[str, float] = field(default_factory=lambda: {
        "notification": NOTIFICATION_COOLDOWN,
        "window_appeared": WINDOW_STATE_COOLDOWN,
        "content_changed": WINDOW_CONTENT_COOLDOWN,
    })
    diagnostic_throttle: float = DIAGNOSTIC_LOG_THROTTLE
    event_log_throttle: float = EVENT_LOG_THROTTLE
    scale_check_min_price: float = SCALE_CHECK_MIN_PRICE
    scale_max_price_per_km: float = SCALE_MAX_PRICE_PER_KM
    scale_plausible_band: Tuple[float, float] = SCALE_PLAUSIBLE_BAND
    scale_reference_rate: float = SCALE_REFERENCE_RATE
    candidate_min_score: int = CANDIDATE_MIN_SCORE
    route_pair_min_confidence: int = ROUTE_PAIR_MIN_CONFIDENCE
    fuzzy_marker_threshold: int = FUZZY_MARKER_THRESHOLD
    raw_text_sample_max: int = RAW_TEXT_SAMPLE_MAX
    estimate_price_per_km: float = ESTIMATE_PRICE_PER_KM
    estimate_min_per_km: int = ESTIMATE_MIN_PER_KM

    def with_overrides(self, **changes) -> "PipelineConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        base = cls()
        return base.with_overrides(
            min_ride_price=_env_float("RIDE_TRACKER_MIN_PRICE", base.min_ride_price),
            fingerprint_window=_env_float("RIDE_TRACKER_FINGERPRINT_WINDOW", base.fingerprint_window, minimum=1.0),
            acceptance_window=_env_float("RIDE_TRACKER_ACCEPTANCE_WINDOW", base.acceptance_window, minimum=1.0),
            raster_enabled=os.getenv("RIDE_TRACKER_RASTER", "1") != "0",
        )
