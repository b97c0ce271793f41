"""Debug script: trace how a card text moves through gating and the extractor tiers"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from classifier import detect_app_source_from_text
from extractors import ExtractionContext, ExtractorChain, is_complete
from parsing import has_required_offer_tokens, has_strong_ride_signal, is_likely_ride_offer
from selector import merge_candidates, normalize_suspicious_price_scale
from text_processing import normalize_snapshot

SAMPLE = "UberX\nR$ 18,50\n4,93 (274)\n3 min (1.1 km)\n9 min (5.5 km)\nR. A, 100\nAv. B, 200"


def main():
    if len(sys.argv) > 1:
        with open(sys.argv[1], encoding="utf-8") as f:
            raw = f.read()
    else:
        raw = SAMPLE

    print(f"Raw text:\n{raw}\n")
    text = normalize_snapshot(raw)
    if text is None:
        print("❌ Nichts übrig nach Normalisierung (leer oder eigene Karte)")
        return 1

    vendor = detect_app_source_from_text(text)
    print(f"Vendor:          {vendor.display_name}")
    print(f"Required tokens: {has_required_offer_tokens(text, vendor)}")
    print(f"Likely offer:    {is_likely_ride_offer(text, True, vendor)}")
    print(f"Strong signal:   {has_strong_ride_signal(text, vendor)}")
    print()

    requested = []
    ctx = ExtractionContext(text=text, app_source=vendor, request_raster=lambda t: requested.append(t) or False)
    candidates = ExtractorChain().run(ctx)
    print(f"Card price: {ctx.card_price}")
    for c in candidates:
        mark = "✅" if is_complete(c) else "⚠️ "
        print(
            f"  {mark} {c.source:<20} price={c.price} ride={c.ride_distance_km} km/{c.ride_time_min} min "
            f"pickup={c.pickup_distance_km} km/{c.pickup_time_min} min conf={c.confidence}"
        )
    if requested:
        print(f"  Raster angefordert: {', '.join(requested)}")

    merged = merge_candidates(candidates)
    if merged is None:
        print("\n❌ Kein Preis gefunden")
        return 1
    price = normalize_suspicious_price_scale(merged.price, text, merged.ride_distance_km)
    print(f"\nMerged: R$ {price:.2f} via {merged.source} (conf={merged.confidence})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
