import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from extractors import (  # noqa: E402
    ExtractionContext,
    ExtractorChain,
    LabeledNodeExtractor,
    OfferExtractor,
    RoutePairExtractor,
    classify_node_label,
    normalize_extraction_source,
)
from models import AppSource, ExtractionTier, LabeledNode, OfferCandidate  # noqa: E402

UBER_CARD = "UberX\nR$ 18,50\n4,93 (274)\n3 min (1.1 km)\n9 min (5.5 km)\nR. A, 100\nAv. B, 200"
NINETY_NINE_CARD = "Corrida Longa - R$ 32,40 - R$ 2,10\n4min (900m)\n25min (15,4km)"


class _SpyExtractor(OfferExtractor):
    name = "spy"

    def __init__(self):
        self.calls = 0

    def extract(self, ctx):
        self.calls += 1
        return OfferCandidate(price=1.0, tier=ExtractionTier.RASTER, source="spy")


def test_classify_node_label():
    assert classify_node_label("com.ubercab.driver:id/fare_text") == "price"
    assert classify_node_label("pickup_distance") == "pickup_distance"
    assert classify_node_label("pickup_eta") == "pickup_time"
    assert classify_node_label("trip_distance_label") == "ride_distance"
    assert classify_node_label("total_distance") == "ride_distance"
    assert classify_node_label("trip_duration") == "ride_time"
    assert classify_node_label("destination_text") == "address"
    assert classify_node_label("btn_accept") == "action"
    assert classify_node_label("com.x:id/title") == "unknown"
    assert classify_node_label("") == "unknown"


def test_extraction_source_names():
    assert normalize_extraction_source("ocr-fallback") == "ocr"
    assert normalize_extraction_source("all-screen") == "all-screen"
    assert normalize_extraction_source("something-else") == "node-tree"


def test_labeled_nodes_full_card():
    nodes = (
        LabeledNode("com.ubercab.driver:id/pickup_eta", "3 min"),
        LabeledNode("com.ubercab.driver:id/pickup_distance", "1,1 km"),
        LabeledNode("com.ubercab.driver:id/fare", "R$ 18,50"),
        LabeledNode("com.ubercab.driver:id/trip_distance", "5,5 km"),
        LabeledNode("com.ubercab.driver:id/trip_duration", "9 min"),
        LabeledNode("com.ubercab.driver:id/pickup_address", "R. A, 100"),
        LabeledNode("com.ubercab.driver:id/destination_address", "Av. B, 200"),
    )
    ctx = ExtractionContext(text="", app_source=AppSource.UBER, nodes=nodes)

    candidate = LabeledNodeExtractor().extract(ctx)

    assert candidate.source == "node-semantic"
    assert candidate.price == 18.5
    assert candidate.ride_distance_km == 5.5
    assert candidate.ride_time_min == 9
    assert candidate.pickup_distance_km == 1.1
    assert candidate.pickup_time_min == 3
    assert candidate.pickup_address == "R. A, 100"
    assert candidate.dropoff_address == "Av. B, 200"
    assert candidate.confidence == 10


def test_unlabeled_nodes_split_around_price():
    nodes = (
        LabeledNode("a/title", "2 min 0,8 km"),
        LabeledNode("a/fare", "R$ 12,00"),
        LabeledNode("a/info", "14 min 7,5 km"),
    )
    ctx = ExtractionContext(text="", app_source=AppSource.NINETY_NINE, nodes=nodes)

    candidate = LabeledNodeExtractor().extract(ctx)

    assert candidate.pickup_distance_km == 0.8
    assert candidate.pickup_time_min == 2
    assert candidate.ride_distance_km == 7.5
    assert candidate.ride_time_min == 14
    assert candidate.confidence == 6


def test_labeled_nodes_without_data():
    ctx = ExtractionContext(text="", app_source=AppSource.UBER, nodes=(LabeledNode("a/title", "Olá"),))

    assert LabeledNodeExtractor().extract(ctx) is None


def test_99_card_price_overrides_route_pair_price():
    ctx = ExtractionContext(text=NINETY_NINE_CARD, app_source=AppSource.NINETY_NINE, card_price=30.0)

    candidate = RoutePairExtractor().extract(ctx)

    assert candidate.price == 30.0
    assert candidate.pickup_distance_km == 0.9
    assert candidate.pickup_time_min == 4
    assert candidate.ride_distance_km == 15.4
    assert candidate.ride_time_min == 25


def test_card_price_ignored_for_uber_route_pairs():
    ctx = ExtractionContext(text=UBER_CARD, app_source=AppSource.UBER, card_price=30.0)

    candidate = RoutePairExtractor().extract(ctx)

    assert candidate.price == 18.5
    assert candidate.user_rating == 4.93


def test_chain_stops_after_complete_candidate():
    spy = _SpyExtractor()
    chain = ExtractorChain([RoutePairExtractor(), spy])

    found = chain.run(ExtractionContext(text=UBER_CARD, app_source=AppSource.UBER))

    assert [c.source for c in found] == ["ocr-route-pairs"]
    assert spy.calls == 0


def test_chain_computes_card_price():
    ctx = ExtractionContext(text=UBER_CARD, app_source=AppSource.UBER)

    ExtractorChain().run(ctx)

    assert ctx.card_price == 18.5


def test_positional_tier_without_route_pairs():
    text = "R$ 21,30\n9 min\n5,5 km\nAceitar"

    found = ExtractorChain().run(ExtractionContext(text=text, app_source=AppSource.UBER))

    assert len(found) == 1
    assert found[0].tier == ExtractionTier.POSITIONAL
    assert found[0].source == "event-text"
    assert found[0].price == 21.3
    assert found[0].ride_distance_km == 5.5
    assert found[0].ride_time_min == 9


def test_parse_miss_requests_raster():
    requested = []
    ctx = ExtractionContext(
        text="Nova solicitação\nAguarde",
        app_source=AppSource.UNKNOWN,
        request_raster=lambda trigger: requested.append(trigger) or True,
    )

    assert ExtractorChain().run(ctx) == []
    assert requested == ["parse-miss"]


def test_no_raster_request_for_ocr_text():
    requested = []
    ctx = ExtractionContext(
        text="Nova solicitação\nAguarde",
        app_source=AppSource.UNKNOWN,
        origin="ocr-fallback",
        request_raster=requested.append,
    )

    ExtractorChain().run(ctx)

    assert requested == []
