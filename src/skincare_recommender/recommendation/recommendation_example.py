"""
recommendation_example.py

Example usage of the SkincareRecommender.

Run:
  python -m src.skincare_recommender.recommendation.recommendation_example \
      --skin-type oily --concern acne --sensitivity fragrance

Requires:
  SUPABASE_URL
  SUPABASE_KEY (or SUPABASE_SERVICE_ROLE_KEY)
  SPARQL_ENDPOINT, or SKINCARE_ONTOLOGY_TTL for a local ontology file
"""
from __future__ import annotations

import argparse
import json

from src.skincare_recommender.logging_utils import init_logging
from src.skincare_recommender.recommendation.recommender import build_recommender


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--skin-type", required=True)
    ap.add_argument("--concern", action="append", default=[])
    ap.add_argument("--sensitivity", action="append", default=[])
    ap.add_argument("--health", action="store_true", help="Print knowledge graph status and exit")
    args = ap.parse_args()

    init_logging()
    rec = build_recommender()

    if args.health:
        print(json.dumps(rec.health_check(), indent=2))
        return

    out = rec.recommend(
        {"skin_type": args.skin_type, "concerns": args.concern, "sensitivities": args.sensitivity}
    )
    meta = out.metadata
    print(f"tier={meta.algorithm_type} confidence={meta.confidence} time={meta.processing_time_ms}ms")
    for i, r in enumerate(out.recommendations, start=1):
        p = r.product
        print(f"{i:02d}. {p.name} ({p.brand})  score={p.final_score}")
        print("    -", r.explanation)


if __name__ == "__main__":
    main()
