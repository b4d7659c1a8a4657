"""
explanations.py

Human-readable rationale for recommendations. Reasons are emitted in a
fixed order and joined with " • ", so identical inputs always yield the
identical string.
"""
from __future__ import annotations

from typing import Any, Dict, List

from src.skincare_recommender.recommendation.models import GuestProfile, ProductCandidate

SEPARATOR = " • "
HIGH_SCORE = 80
HIGH_RELEVANCE = 0.7

SAFETY_SENTENCES: Dict[str, str] = {
    "excellent": "Ontology analysis: excellent ingredient synergies detected",
    "safe": "Ontology analysis: no ingredient conflicts detected",
    "caution_needed": "Ontology analysis: potential ingredient interactions (use with caution)",
}

TIER_SENTENCES: Dict[str, str] = {
    "DATABASE_BASIC_FALLBACK": "Catalog match for {skin} skin (knowledge graph unavailable)",
    "EMERGENCY_FALLBACK": "Emergency fallback recommendation (ontology unavailable)",
}


def build_explanation(product: ProductCandidate, profile: GuestProfile) -> str:
    reasons: List[str] = []

    matched = product.matched_semantic_ingredients
    if matched:
        top = ", ".join(m.name for m in matched[:2])
        reasons.append(f"Contains {len(matched)} ontology-recommended ingredients ({top})")

    analysis = product.safety_analysis
    if analysis.ontology_analyzed:
        sentence = SAFETY_SENTENCES.get(analysis.overall_safety_status)
        if sentence:
            reasons.append(sentence)

    relevant = [m for m in matched if m.concern_relevance_score > HIGH_RELEVANCE]
    if relevant:
        reasons.append(f"Addresses your concerns through {len(relevant)} targeted ingredients")

    if product.final_score >= HIGH_SCORE:
        reasons.append(f"High ontology compatibility score ({product.final_score}/100)")

    if not reasons:
        reasons.append(f"Basic ontology compatibility for {profile.skin_type.value} skin")

    return SEPARATOR.join(reasons)


def build_tier_explanation(product: ProductCandidate, profile: GuestProfile, tier: str) -> str:
    template = TIER_SENTENCES.get(tier)
    if template is None:
        return build_explanation(product, profile)
    return template.format(skin=profile.skin_type.value)


def system_explanation(profile: GuestProfile, tier: str, semantic_count: int) -> Dict[str, Any]:
    """Result-level rationale: how the list was produced for this profile."""
    approaches = {
        "SEMANTIC_REASONING": "Ontology-based semantic reasoning with catalog mapping",
        "BASIC_ONTOLOGY_FALLBACK": "General ontology ingredients mapped onto the catalog",
        "DATABASE_BASIC_FALLBACK": "Catalog-only matching (knowledge graph unavailable)",
        "EMERGENCY_FALLBACK": "Emergency product listing (ontology and scoring unavailable)",
    }
    factors = {
        "SEMANTIC_REASONING": [
            "Ingredient to skin-type / concern relations in the knowledge graph",
            "Fuzzy ingredient mapping onto product ingredient lists",
            "Declared sensitivity safety flags",
            "Ingredient conflicts and synergies from the knowledge graph",
        ],
        "BASIC_ONTOLOGY_FALLBACK": [
            "General ingredient list from the knowledge graph",
            "Fuzzy ingredient mapping onto product ingredient lists",
            "Declared sensitivity safety flags",
        ],
        "DATABASE_BASIC_FALLBACK": [
            "Declared sensitivity safety flags",
            "Concern keywords in product text",
        ],
        "EMERGENCY_FALLBACK": [],
    }
    return {
        "approach": approaches.get(tier, tier),
        "reasoning": (
            f"{semantic_count} ontology ingredients considered for "
            f"{profile.skin_type.value} skin"
        ),
        "factors_considered": factors.get(tier, []),
        "personalization": {
            "skin_type": profile.skin_type.value,
            "concerns": sorted(profile.concerns),
            "sensitivities": sorted(profile.sensitivities),
        },
    }
