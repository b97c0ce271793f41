from typing import Callable, Optional, Protocol

from models import AppSource, CanonicalRideOffer
from utils import log_debug, log_text


class OfferConsumer(Protocol):
    def on_ride_detected(self, offer: CanonicalRideOffer) -> None: ...

    def on_ride_accepted(self, app_source: AppSource) -> None: ...


def format_offer(offer: CanonicalRideOffer) -> str:
    pickup = f"{offer.pickup_distance_km} km" if offer.pickup_distance_km is not None else "?"
    pickup_min = f"{offer.pickup_time_min} min" if offer.pickup_time_min is not None else "?"
    km_flag = " (est.)" if offer.distance_estimated else ""
    min_flag = " (est.)" if offer.time_estimated else ""
    return (
        f"[{offer.app_source.display_name}] R$ {offer.price:.2f} | "
        f"ride {offer.ride_distance_km:.1f} km{km_flag} / {offer.ride_time_min} min{min_flag} | "
        f"pickup {pickup} / {pickup_min} | rating {offer.user_rating or '-'} | "
        f"{offer.pickup_address or '?'} -> {offer.dropoff_address or '?'} | src={offer.extraction_source}"
    )


class LoggingOfferConsumer:
    """Default consumer: writes offers and acceptances to the log and console."""

    def __init__(self, echo: bool = True) -> None:
        self.echo = echo
        self.offers = 0
        self.accepted = 0

    def on_ride_detected(self, offer: CanonicalRideOffer) -> None:
        self.offers += 1
        line = format_offer(offer)
        log_text(f"[OFFER] {line}\n{offer.raw_text}")
        if self.echo:
            print(f"🚗 {line}")

    def on_ride_accepted(self, app_source: AppSource) -> None:
        self.accepted += 1
        log_text(f"[ACCEPTED] {app_source.display_name}")
        if self.echo:
            print(f"✅ Fahrt angenommen ({app_source.display_name})")


class OfferEmitter:
    """Delivers each offer once to the consumer and arms acceptance tracking."""

    def __init__(
        self,
        consumer: OfferConsumer,
        on_published: Optional[Callable[[CanonicalRideOffer], None]] = None,
    ) -> None:
        self.consumer = consumer
        self.on_published = on_published
        self.published_count = 0
        self.last_offer: Optional[CanonicalRideOffer] = None

    def publish(self, offer: CanonicalRideOffer) -> None:
        self.published_count += 1
        self.last_offer = offer
        log_debug(
            f"[EMIT] {offer.app_source.display_name} R$ {offer.price:.2f} "
            f"{offer.ride_distance_km} km / {offer.ride_time_min} min src={offer.extraction_source}"
        )
        if self.on_published is not None:
            self.on_published(offer)
        self.consumer.on_ride_detected(offer)
