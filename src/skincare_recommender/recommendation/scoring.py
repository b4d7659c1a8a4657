"""
scoring.py

Weighted hybrid scoring of product candidates.

    final = round(0.7 * semantic + 0.2 * mapping + 0.1 * safety)

Weights are a fixed policy: ontology match first, mapping coverage second,
declared-sensitivity safety last (hard exclusions happen in the retriever).

No randomness: identical inputs give identical scores and order.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from src.skincare_recommender.ontologies.ontology_service import concern_keywords
from src.skincare_recommender.recommendation.models import (
    GuestProfile,
    ProductCandidate,
    SafetyFlag,
    SemanticIngredient,
)

WEIGHTS: Dict[str, float] = {
    "semantic_reasoning": 0.7,
    "ingredient_mapping": 0.2,
    "safety_analysis": 0.1,
}

SAFETY_BASE = 80.0

# sensitivity -> (reward when flag is TRUE, penalty otherwise)
# Rewards and penalties differ per sensitivity.
SAFETY_DELTAS: Dict[str, Tuple[float, float]] = {
    "fragrance": (15.0, -20.0),
    "alcohol": (10.0, -15.0),
    "paraben": (10.0, -10.0),
    "sulfate": (5.0, -5.0),
}

HIGH_RELEVANCE = 0.7

DATABASE_BASE = 50.0
DATABASE_SAFETY_BONUS = {"fragrance": 15.0, "alcohol": 15.0, "paraben": 15.0}


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def id_sort_key(product_id: Any) -> Tuple[int, Any]:
    """Ascending id order that copes with integer and string ids."""
    if isinstance(product_id, int):
        return (0, product_id)
    text = str(product_id)
    if text.isdigit():
        return (0, int(text))
    return (1, text)


def semantic_score(matched: Sequence[SemanticIngredient], total_semantic: int) -> float:
    if total_semantic <= 0 or not matched:
        return 0.0
    coverage = len(matched) / total_semantic
    avg_relevance = sum(m.concern_relevance_score for m in matched) / len(matched)
    return round(min(100.0, coverage * 60 + avg_relevance * 40), 2)


def mapping_score(matched: Sequence[SemanticIngredient], total_semantic: int) -> float:
    if total_semantic <= 0:
        return 50.0
    coverage = len(matched) / total_semantic
    quality_bonus = 20.0 if any(m.is_high_confidence for m in matched) else 0.0
    relevance_bonus = 20.0 if any(m.concern_relevance_score > HIGH_RELEVANCE for m in matched) else 0.0
    return round(min(100.0, coverage * 60 + quality_bonus + relevance_bonus), 2)


def safety_score(product: ProductCandidate, sensitivities) -> float:
    score = SAFETY_BASE
    for sensitivity in sorted(sensitivities):
        deltas = SAFETY_DELTAS.get(sensitivity)
        if deltas is None:
            continue
        reward, penalty = deltas
        score += reward if product.flag_for(sensitivity) is SafetyFlag.TRUE else penalty
    return _clamp(score)


def confidence_level(semantic: float, mapping: float) -> str:
    avg = (semantic + mapping) / 2
    if avg >= 80:
        return "very_high"
    if avg >= 65:
        return "high"
    if avg >= 50:
        return "medium"
    return "low"


def final_score(semantic: float, mapping: float, safety: float) -> int:
    raw = (
        semantic * WEIGHTS["semantic_reasoning"]
        + mapping * WEIGHTS["ingredient_mapping"]
        + safety * WEIGHTS["safety_analysis"]
    )
    return int(_clamp(round(raw)))


def rank(candidates: Sequence[ProductCandidate]) -> List[ProductCandidate]:
    """final_score descending, ties broken by ascending product id."""
    return sorted(candidates, key=lambda c: (-c.final_score, id_sort_key(c.id)))


class HybridScorer:
    def score(
        self,
        candidates: Sequence[ProductCandidate],
        profile: GuestProfile,
        semantic_ingredients: Sequence[SemanticIngredient],
    ) -> List[ProductCandidate]:
        total = len(semantic_ingredients)
        for c in candidates:
            matched = c.matched_semantic_ingredients
            c.semantic_score = semantic_score(matched, total)
            c.mapping_score = mapping_score(matched, total)
            c.safety_score = safety_score(c, profile.sensitivities)
            c.final_score = final_score(c.semantic_score, c.mapping_score, c.safety_score)
            c.confidence_level = confidence_level(c.semantic_score, c.mapping_score)
        return rank(candidates)


# ---------------------------------------------------------------------
# Database tier scoring (no ontology data available)
# ---------------------------------------------------------------------
def concern_text_relevance(product: ProductCandidate, concerns) -> float:
    keywords = [k for concern in sorted(concerns) for k in concern_keywords(concern)]
    if not keywords:
        return 0.0
    text = f"{product.name or ''} {product.description or ''}".lower()
    return sum(1 for k in keywords if k in text) / len(keywords)


def database_score(product: ProductCandidate, profile: GuestProfile) -> int:
    score = DATABASE_BASE
    for sensitivity, bonus in DATABASE_SAFETY_BONUS.items():
        if sensitivity in profile.sensitivities and product.flag_for(sensitivity) is SafetyFlag.TRUE:
            score += bonus
    score += concern_text_relevance(product, profile.concerns) * 10
    return int(_clamp(round(score)))
