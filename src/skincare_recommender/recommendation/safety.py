"""
safety.py

Ontology-based interaction analysis for each candidate's top ingredients.

One conflict query + one synergy query per candidate is the dominant cost of
a request, so candidates are analysed on a small bounded thread pool. The
queries are pure reads; output order equals input order.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.ontologies.ingredient_matcher import (
    canonical_names,
    parse_ingredient_list,
)
from src.skincare_recommender.ontologies.ontology_service import OntologyService
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.models import ProductCandidate, SafetyAnalysis

logger = get_logger("safety")

MAX_ANALYZED_INGREDIENTS = 10
INSUFFICIENT_DATA_NOTE = "Insufficient ingredient data for interaction analysis"


def determine_safety_status(conflicts: int, synergies: int) -> str:
    if conflicts > 0:
        return "caution_needed"
    if synergies > 0:
        return "excellent"
    return "safe"


def top_ingredient_names(ingredient_list: str, limit: int = MAX_ANALYZED_INGREDIENTS) -> List[str]:
    """First `limit` catalog ingredients, each followed by its canonical alias."""
    names: List[str] = []
    for raw in parse_ingredient_list(ingredient_list, limit=limit):
        for name in canonical_names(raw):
            if name not in names:
                names.append(name)
    return names


class SafetyAnalyzer:
    def __init__(self, ontology: OntologyService, *, max_workers: int = 5) -> None:
        self.ontology = ontology
        self.max_workers = max(1, int(max_workers))

    def analyze_product(
        self, product: ProductCandidate, token: Optional[CancellationToken] = None
    ) -> SafetyAnalysis:
        top = parse_ingredient_list(product.ingredient_list, limit=MAX_ANALYZED_INGREDIENTS)
        if len(top) < 2:
            return SafetyAnalysis(
                overall_safety_status="safe",
                ontology_analyzed=False,
                note=INSUFFICIENT_DATA_NOTE,
            )

        names = top_ingredient_names(product.ingredient_list)
        conflicts = self.ontology.get_ingredient_conflicts(names, token)
        synergies = self.ontology.get_synergistic_combos(names, token)

        if not conflicts.ok or not synergies.ok:
            return SafetyAnalysis(
                overall_safety_status="unknown",
                ontology_analyzed=False,
                note=f"Analysis unavailable: {conflicts.error or synergies.error}",
            )

        return SafetyAnalysis(
            conflicts_detected=conflicts.count,
            synergies_found=synergies.count,
            overall_safety_status=determine_safety_status(conflicts.count, synergies.count),
            ontology_analyzed=True,
            conflict_details=conflicts.data,
            synergy_details=synergies.data,
        )

    def analyze(
        self,
        candidates: Sequence[ProductCandidate],
        token: Optional[CancellationToken] = None,
    ) -> List[ProductCandidate]:
        if not candidates:
            return []

        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(candidates)),
            thread_name_prefix="safety-analysis",
        ) as executor:
            futures = [executor.submit(self.analyze_product, c, token) for c in candidates]
            try:
                for candidate, future in zip(candidates, futures):
                    candidate.safety_analysis = future.result()
            except BaseException:
                # Don't start queries for candidates still waiting in the pool.
                for f in futures:
                    f.cancel()
                raise

        flagged = sum(1 for c in candidates if c.safety_analysis.conflicts_detected > 0)
        logger.info(
            "Safety analysis complete for %d products, %d with conflicts",
            len(candidates),
            flagged,
            extra={
                "invoking_func": "SafetyAnalyzer.analyze",
                "invoking_purpose": "Ontology conflict / synergy analysis",
                "next_step": "Generate explanations",
                "resolution": "",
            },
        )
        return list(candidates)
