import asyncio
from concurrent.futures import Executor
from typing import Callable, Optional, Sequence

from acceptance import AcceptanceOutcome, AcceptanceTracker
from addresses import extract_addresses
from classifier import (
    detect_app_source,
    detect_app_source_from_text,
    is_monitored_source,
    is_own_source,
)
from config import DEBUG_TEXT_SAMPLE_MAX, PipelineConfig, get_debug_mode
from debounce import Debouncer
from dedup import OfferFingerprintCache, build_offer_fingerprint
from emitter import LoggingOfferConsumer, OfferConsumer, OfferEmitter
from extractors import ExtractionContext, ExtractorChain, OfferExtractor, normalize_extraction_source
from models import AppSource, CanonicalRideOffer, EventKind, OfferCandidate, RawSnapshot
from parsing import has_required_offer_tokens, has_strong_ride_signal, is_likely_ride_offer
from raster import EMPTY_TREE_TRIGGER, RasterFallback, ScreenCapture, TextRecognizer
from scheduling import AsyncioScheduler, Scheduler, monotonic_clock
from selector import (
    estimate_distance,
    estimate_time,
    has_minimal_evidence,
    merge_candidates,
    normalize_suspicious_price_scale,
)
from text_processing import looks_like_structural_id_only, normalize_snapshot
from utils import DiagnosticThrottle, log_debug, truncate_sample

# Candidate sources that name their own extraction path
_SELF_DESCRIBED_SOURCES = ("ocr-route-pairs", "node-semantic")


def snapshot_text(snapshot: RawSnapshot) -> str:
    """Event text, or the node texts in traversal order when there is none."""
    if snapshot.text.strip():
        return snapshot.text.strip()
    return "\n".join(n.text.strip() for n in snapshot.nodes if n.text and n.text.strip())


# -----------------------
# Entscheidungslogik: Snapshots prüfen, extrahieren & melden
# -----------------------
class RideOfferPipeline:
    """
    Turns content snapshots of the driver apps into ride offers.

    All state lives on the instance and every entry point (on_event, timer
    callbacks, raster results) runs on the dispatch path, so no locking is
    needed. Timers go through the injected scheduler, time through the
    injected clock.

    Without a `scheduler` the pipeline uses an AsyncioScheduler bound to the
    running event loop, so on_event must then be called from inside that
    loop. Callers outside a loop have to pass their own scheduler.
    """

    def __init__(
        self,
        consumer: OfferConsumer,
        config: Optional[PipelineConfig] = None,
        clock: Callable[[], float] = monotonic_clock,
        scheduler: Optional[Scheduler] = None,
        capture: Optional[ScreenCapture] = None,
        recognizer: Optional[TextRecognizer] = None,
        executor: Optional[Executor] = None,
        window_visible: Optional[Callable[[str], bool]] = None,
        extractors: Optional[Sequence[OfferExtractor]] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.clock = clock
        self.scheduler = scheduler or AsyncioScheduler()
        self.consumer = consumer

        self.acceptance = AcceptanceTracker(
            on_accepted=consumer.on_ride_accepted,
            window=self.config.acceptance_window,
            trip_max_duration=self.config.trip_max_duration,
        )
        self.emitter = OfferEmitter(consumer, on_published=self._arm_acceptance)
        self.dedup = OfferFingerprintCache(self.config.fingerprint_window, self.config.fingerprint_max_size, clock)
        self.offer_debouncer = Debouncer(self.scheduler, self.config.debounce_delay, name="debounce")
        self.render_debouncer = Debouncer(self.scheduler, self.config.card_render_delay, name="render")
        self.raster = RasterFallback(
            capture,
            recognizer,
            self.scheduler,
            clock,
            on_text=self._on_raster_text,
            config=self.config,
            window_visible=window_visible,
            executor=executor,
        )
        self.chain = ExtractorChain(extractors)
        self.diagnostics = DiagnosticThrottle(clock, self.config.diagnostic_throttle)
        self.event_log = DiagnosticThrottle(clock, self.config.event_log_throttle)

        self.last_detected_time: Optional[float] = None
        self.running = False
        self.events_seen = 0
        self.error_count = 0
        self.last_error_message: Optional[str] = None

    # -----------------------
    # Lifecycle
    # -----------------------
    def start(self) -> None:
        if self.running:
            print("Pipeline läuft bereits.")
            return
        self.running = True
        print("▶ Ride offer pipeline gestartet ...")

    def stop(self) -> None:
        self.running = False
        self.offer_debouncer.cancel()
        self.render_debouncer.cancel()
        self.raster.shutdown()
        print("⏹ Ride offer pipeline gestoppt.")

    def _diag(self, key: str, message: str) -> None:
        self.diagnostics.log(key, message)

    # -----------------------
    # Dispatch
    # -----------------------
    def on_event(self, snapshot: RawSnapshot) -> None:
        """Entry point of the content observer. Never raises."""
        try:
            self._dispatch(snapshot)
        except Exception as e:
            self.error_count += 1
            self.last_error_message = f"{type(e).__name__}: {e}"
            log_debug(f"[ERROR] event {snapshot.kind.value} from {snapshot.source}: {self.last_error_message}")

    def _dispatch(self, snapshot: RawSnapshot) -> None:
        source = snapshot.source or ""
        if is_own_source(source):
            # Unser eigenes Overlay: ausstehenden Render-OCR verwerfen
            self.render_debouncer.cancel()
            return
        if not is_monitored_source(source):
            return

        self.events_seen += 1
        kind = snapshot.kind
        now = self.clock()
        text = snapshot_text(snapshot)
        if self.event_log.should_log(f"{source}|{kind.value}"):
            log_debug(f">>> [{source}] {kind.value}: {truncate_sample(text, 200) or '(leer)'}")

        normalized = normalize_snapshot(text) if text else None
        self._check_acceptance(kind, text, normalized, now)
        if kind == EventKind.CLICK:
            return

        if self._in_cooldown(kind, text, source, now):
            return

        if not text:
            self.request_raster(source, EMPTY_TREE_TRIGGER)
            return

        origin = "notification" if kind == EventKind.NOTIFICATION else snapshot.origin
        is_state_change = kind in (EventKind.WINDOW_APPEARED, EventKind.NOTIFICATION)
        self.process_candidate_text(text, source, is_state_change, origin, nodes=snapshot.nodes)

        if kind == EventKind.NOTIFICATION:
            self.request_raster(source, "notification-ocr-only")
        elif kind == EventKind.WINDOW_APPEARED:
            # Karten-Animation abwarten, sonst OCR auf halb gerenderten Daten
            self.render_debouncer.submit(source, lambda src: self.request_raster(src, "window-state-ocr-only"))
        else:
            self.request_raster(source, "window-content-ocr-only")

    def _check_acceptance(self, kind: EventKind, text: str, normalized: Optional[str], now: float) -> None:
        """Clicks match the raw label, screen phrases only the normalized text (no overlay echo)."""
        if self.acceptance.expire_if_stale(now):
            return
        outcome = None
        if kind == EventKind.CLICK:
            outcome = self.acceptance.on_click(text, now)
        if outcome is None and normalized is not None:
            outcome = self.acceptance.on_text(normalized, now)
        if outcome == AcceptanceOutcome.REJECTED:
            self.last_detected_time = None

    def _in_cooldown(self, kind: EventKind, text: str, source: str, now: float) -> bool:
        if self.last_detected_time is None:
            return False
        cooldown = self.config.event_cooldowns.get(kind.value, 0.0)
        if now - self.last_detected_time >= cooldown:
            return False
        if kind == EventKind.WINDOW_APPEARED and has_strong_ride_signal(text, detect_app_source(source)):
            log_debug("[PIPELINE] cooldown bypassed: new offer window with strong ride signal")
            return False
        self._diag(
            f"cooldown|{kind.value}",
            f"[PIPELINE] ignored by cooldown: kind={kind.value} delta={now - self.last_detected_time:.2f}s",
        )
        return True

    def request_raster(self, source: str, trigger: str) -> bool:
        return self.raster.request(source, trigger)

    def _on_raster_text(self, source: str, text: str, trigger: str) -> None:
        try:
            log_debug(f"[OCR] {trigger}: {truncate_sample(text, DEBUG_TEXT_SAMPLE_MAX)}")
            self.process_candidate_text(text, source, False, "ocr-fallback", allow_raster=False)
        except Exception as e:
            self.error_count += 1
            self.last_error_message = f"{type(e).__name__}: {e}"
            log_debug(f"[ERROR] raster result from {source}: {self.last_error_message}")

    # -----------------------
    # Candidate text
    # -----------------------
    def process_candidate_text(
        self,
        text: str,
        source: str,
        is_state_change: bool,
        origin: str,
        nodes: Sequence = (),
        allow_raster: bool = True,
    ) -> Optional[OfferCandidate]:
        mode = "STATE" if is_state_change else "CONTENT"
        sanitized = normalize_snapshot(text)
        if sanitized is None:
            self._diag(f"no-text|{source}", "[PIPELINE] ignored: empty text or own analysis card")
            return None

        if looks_like_structural_id_only(sanitized):
            if allow_raster and normalize_extraction_source(origin) != "ocr":
                self.request_raster(source, "structural-id-only")
            return None

        hint = detect_app_source(source)
        text_vendor = detect_app_source_from_text(sanitized, self.config.fuzzy_marker_threshold)
        vendor = text_vendor if text_vendor != AppSource.UNKNOWN else hint

        self.acceptance.update_trip_mode_by_text(sanitized)
        strong = has_strong_ride_signal(sanitized, vendor)
        if self.acceptance.should_suppress_because_trip_in_progress(sanitized, self.clock(), strong):
            self._diag(f"trip-mode|{source}|{mode}", "[PIPELINE] ignored: trip in progress (navigation text)")
            return None

        if not has_required_offer_tokens(sanitized, vendor):
            self._diag(
                f"missing-core-tokens|{source}|{mode}",
                f"[PIPELINE] ignored without required tokens (app={vendor.display_name})",
            )
            return None

        if not is_likely_ride_offer(sanitized, is_state_change, vendor):
            self._diag(
                f"low-confidence|{source}|{mode}",
                f"[PIPELINE] ignored by low confidence ({mode}): {truncate_sample(sanitized, DEBUG_TEXT_SAMPLE_MAX)}",
            )
            return None

        log_debug(f"[PIPELINE] === {mode} from {source} (origin={origin}) ===")
        return self._try_parse(sanitized, source, text_vendor, origin, nodes, allow_raster)

    def _try_parse(
        self,
        text: str,
        source: str,
        vendor: AppSource,
        origin: str,
        nodes: Sequence,
        allow_raster: bool,
    ) -> Optional[OfferCandidate]:
        ctx = ExtractionContext(
            text=text,
            app_source=vendor,
            origin=origin,
            nodes=tuple(nodes),
            config=self.config,
            allow_raster=allow_raster,
            request_raster=lambda trigger: self.request_raster(source, trigger),
        )
        candidates = self.chain.run(ctx)
        merged = merge_candidates(candidates)
        if merged is None or merged.price is None:
            self._diag(f"no-price|{source}", f"[PIPELINE] no ride price found in text of {source}")
            return None
        if merged.price < self.config.min_ride_price:
            self._diag(f"low-price|{source}", f"[PIPELINE] price too low for a ride: R$ {merged.price}")
            return None

        if merged.source in _SELF_DESCRIBED_SOURCES or merged.source.endswith("-card-pattern"):
            extraction_source = merged.source
        else:
            extraction_source = ctx.extraction_source
        self._build_and_emit(merged, vendor, source, text, extraction_source)
        return merged

    def _build_and_emit(
        self,
        candidate: OfferCandidate,
        vendor: AppSource,
        source: str,
        text: str,
        extraction_source: str,
    ) -> None:
        price = normalize_suspicious_price_scale(candidate.price, text, candidate.ride_distance_km, self.config)
        if not has_minimal_evidence(text, price):
            self._diag(
                f"missing-evidence|{source}",
                f"[PIPELINE] offer dropped (R$ + 2x km required): price={price}",
            )
            return

        distance = candidate.ride_distance_km
        distance_estimated = distance is None
        if distance is None:
            distance = estimate_distance(price, self.config.estimate_price_per_km)
        ride_time = candidate.ride_time_min
        time_estimated = ride_time is None
        if ride_time is None:
            ride_time = estimate_time(distance, self.config.estimate_min_per_km)

        pickup_address, dropoff_address = extract_addresses(text)
        pickup_address = pickup_address or candidate.pickup_address
        dropoff_address = dropoff_address or candidate.dropoff_address
        if not pickup_address or not dropoff_address:
            log_debug(f"[PIPELINE] address(es) missing (pickup='{pickup_address}', dropoff='{dropoff_address}')")

        if vendor == AppSource.UNKNOWN:
            vendor = detect_app_source(source)

        now = self.clock()
        offer = CanonicalRideOffer(
            app_source=vendor,
            price=price,
            ride_distance_km=distance,
            ride_time_min=ride_time,
            pickup_distance_km=candidate.pickup_distance_km,
            pickup_time_min=candidate.pickup_time_min,
            user_rating=candidate.user_rating,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
            extraction_source=extraction_source,
            raw_text=text[:self.config.raw_text_sample_max],
            timestamp=now,
            distance_estimated=distance_estimated,
            time_estimated=time_estimated,
            confidence=candidate.confidence,
        )

        fingerprint = build_offer_fingerprint(offer, source)
        # nur prüfen: eingetragen wird erst beim Senden
        if self.dedup.is_recently_seen(fingerprint, now, record=False):
            log_debug(f"[DEDUP] repeated offer ignored: R$ {price:.2f}")
            return

        self.offer_debouncer.submit((offer, fingerprint), self._emit)

    def _emit(self, payload) -> None:
        offer, fingerprint = payload
        if self.dedup.is_recently_seen(fingerprint, self.clock()):
            log_debug(f"[DEDUP] repeated offer ignored at emission: R$ {offer.price:.2f}")
            return
        self.last_detected_time = self.clock()
        self.render_debouncer.cancel()
        self.emitter.publish(offer)

    def _arm_acceptance(self, offer: CanonicalRideOffer) -> None:
        self.acceptance.register_offer(offer.app_source, self.clock())

    def get_health_status(self) -> dict:
        return {
            "running": self.running,
            "events_seen": self.events_seen,
            "offers_emitted": self.emitter.published_count,
            "error_count": self.error_count,
            "last_error": self.last_error_message,
            "raster_requests": self.raster.requests,
            "raster_failures": self.raster.failures,
            "acceptance": self.acceptance.status.value,
            "trip_in_progress": self.acceptance.trip_in_progress,
        }


# -----------------------
# Entry point
# -----------------------
async def _run_pipeline(stop_event: asyncio.Event) -> None:
    from observer import ScreenPollingObserver
    from ocr_engines import EngineTextRecognizer
    from raster import RegionScreenCapture

    loop = asyncio.get_running_loop()
    scheduler = AsyncioScheduler(loop)
    recognizer = EngineTextRecognizer()
    capture = RegionScreenCapture()
    observer = ScreenPollingObserver(recognizer, capture)
    pipeline = RideOfferPipeline(
        LoggingOfferConsumer(),
        config=PipelineConfig.from_env(),
        scheduler=scheduler,
        capture=capture,
        recognizer=recognizer,
        window_visible=observer.monitored_window_visible,
    )
    observer.subscribe(pipeline.on_event)
    pipeline.start()
    observer.start()
    try:
        await stop_event.wait()
    finally:
        observer.stop()
        pipeline.stop()


def main() -> None:
    if get_debug_mode():
        print("Debug-Modus aktiv (RIDE_TRACKER_DEBUG=1)")

    async def _main() -> None:
        # runs until Ctrl+C cancels the loop
        await _run_pipeline(asyncio.Event())

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        print("Abgebrochen.")


if __name__ == "__main__":
    main()
