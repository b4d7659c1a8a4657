"""
retriever.py

Maps ontology ingredients onto the product catalog.

Leniency policy for declared sensitivities: a product is excluded only when
its flag is explicitly FALSE (e.g. fragrance_free = false for a guest who
declared "fragrance"). UNKNOWN flags are never excluded; the scorer prices
them in instead.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.ontologies.ingredient_matcher import match_semantic_ingredients
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.models import (
    GuestProfile,
    ProductCandidate,
    SafetyFlag,
    SemanticIngredient,
)
from src.skincare_recommender.recommendation.repository import ProductRepository

logger = get_logger("retriever")


def violates_sensitivity(product: ProductCandidate, sensitivities: Iterable[str]) -> bool:
    for sensitivity in sensitivities:
        if product.flag_for(sensitivity) is SafetyFlag.FALSE:
            return True
    return False


def apply_safety_filter(
    products: Sequence[ProductCandidate], profile: GuestProfile
) -> List[ProductCandidate]:
    return [p for p in products if not violates_sensitivity(p, profile.sensitivities)]


class CandidateRetriever:
    def __init__(self, repository: ProductRepository, *, pool_limit: int = 100) -> None:
        self.repository = repository
        self.pool_limit = pool_limit

    def retrieve(
        self,
        semantic_ingredients: Sequence[SemanticIngredient],
        profile: GuestProfile,
        token: Optional[CancellationToken] = None,
    ) -> List[ProductCandidate]:
        """
        Safety-filtered active products that contain at least one of the
        semantic ingredients. Raises RepositoryFailure if the catalog is down.
        """
        products = self.repository.list_active_products(self.pool_limit, token)
        safe = apply_safety_filter(products, profile)

        candidates: List[ProductCandidate] = []
        for product in safe:
            matched = match_semantic_ingredients(product.ingredient_list, semantic_ingredients)
            if not matched:
                continue
            product.matched_semantic_ingredients = matched
            candidates.append(product)

        logger.info(
            "Retrieved %d products, %d passed safety filter, %d matched ontology ingredients (%s)",
            len(products),
            len(safe),
            len(candidates),
            profile.describe(),
            extra={
                "invoking_func": "CandidateRetriever.retrieve",
                "invoking_purpose": "Map ontology ingredients onto product catalog",
                "next_step": "Score candidates",
                "resolution": "",
            },
        )
        return candidates
