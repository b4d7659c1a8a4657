"""
ingredient_matcher.py

Purpose:
    Fuzzy mapping between free-text catalog ingredient lists and canonical
    ingredient names from the knowledge graph.

    Catalog text is inconsistently spelled and abbreviated (INCI names,
    marketing names, "KOMPOSISI :" prefixes), so exact matching misses most
    true matches. Matching order:
      1. substring containment (either direction)  -> 1.0
      2. curated alias table of known synonyms      -> 0.9
      3. normalized Levenshtein similarity          -> [0, 1]

    Everything here is pure and deterministic.
"""
from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from src.skincare_recommender.recommendation.models import SemanticIngredient

MATCH_THRESHOLD = 0.7
MAX_INGREDIENTS_PER_PRODUCT = 30
ALIAS_SCORE = 0.9

# canonical name -> known synonyms (INCI / abbreviations / vitamin names)
INGREDIENT_ALIASES: Dict[str, Tuple[str, ...]] = {
    "hyaluronic acid": ("sodium hyaluronate", "hyaluronate", "hydrolyzed hyaluronic"),
    "salicylic acid": ("bha", "beta hydroxy"),
    "glycolic acid": ("aha", "alpha hydroxy"),
    "niacinamide": ("nicotinamide", "vitamin b3"),
    "retinol": ("retinyl palmitate", "vitamin a"),
    "vitamin c": ("ascorbic acid", "magnesium ascorbyl phosphate", "ascorbyl glucoside"),
    "ceramides": ("ceramide np", "ceramide ap", "ceramide eop"),
    "centella asiatica": ("cica", "madecassoside", "asiaticoside"),
    "panthenol": ("provitamin b5", "pro-vitamin b5"),
}

_LABEL_PREFIX = re.compile(r"^\s*(komposisi|ingredients?)\s*:\s*", re.IGNORECASE)


def normalize(name: Optional[str]) -> str:
    if not isinstance(name, str):
        return ""
    return re.sub(r"\s+", " ", name).strip().lower()


def _alias_hit(a: str, b: str) -> bool:
    for canonical, alts in INGREDIENT_ALIASES.items():
        if canonical in a and any(alt in b for alt in alts):
            return True
        if canonical in b and any(alt in a for alt in alts):
            return True
    return False


def similarity(a: str, b: str) -> float:
    """Similarity of two ingredient names in [0, 1]."""
    a_n = normalize(a)
    b_n = normalize(b)
    if not a_n or not b_n:
        return 0.0
    if a_n in b_n or b_n in a_n:
        return 1.0
    if _alias_hit(a_n, b_n):
        return ALIAS_SCORE
    return float(Levenshtein.normalized_similarity(a_n, b_n))


def is_match(a: str, b: str, threshold: float = MATCH_THRESHOLD) -> bool:
    return similarity(a, b) >= threshold


def canonical_names(name: str) -> List[str]:
    """The name itself plus the canonical form of any alias it contains."""
    n = normalize(name)
    if not n:
        return []
    out = [n]
    for canonical, alts in INGREDIENT_ALIASES.items():
        if canonical in n:
            continue
        if any(alt in n for alt in alts) and canonical not in out:
            out.append(canonical)
    return out


def parse_ingredient_list(text: Optional[str], limit: int = MAX_INGREDIENTS_PER_PRODUCT) -> List[str]:
    """Best-effort split of a catalog ingredient list into ingredient names."""
    if not isinstance(text, str) or not text.strip():
        return []
    cleaned = _LABEL_PREFIX.sub("", text)
    cleaned = re.sub(r"\s+", " ", cleaned)
    out: List[str] = []
    for part in re.split(r"[,;]+", cleaned):
        part = part.strip().strip(".")
        if len(part) <= 2:
            continue
        out.append(part)
        if len(out) >= limit:
            break
    return out


def match_semantic_ingredients(
    ingredient_list: str,
    semantic_ingredients: Sequence[SemanticIngredient],
    *,
    limit: int = MAX_INGREDIENTS_PER_PRODUCT,
    threshold: float = MATCH_THRESHOLD,
) -> List[SemanticIngredient]:
    """
    Return the semantic ingredients found in a product's ingredient text,
    each at most once, in the order of `semantic_ingredients`.

    Both lists are capped at `limit` so the pairwise work stays bounded.
    """
    product_ingredients = parse_ingredient_list(ingredient_list, limit=limit)
    if not product_ingredients:
        return []

    matched: List[SemanticIngredient] = []
    for sem in list(semantic_ingredients)[:limit]:
        if any(similarity(prod, sem.name) >= threshold for prod in product_ingredients):
            matched.append(sem)
    return matched
