"""
recommender.py

Entry point of the skincare recommendation engine.

    profile -> fallback chain -> RecommendationResult

SkincareRecommender owns the per-request deadline and the wiring of the
pipeline components; all tier logic lives in fallback.py.

Usage:
    from src.skincare_recommender.recommendation.recommender import build_recommender

    rec = build_recommender()
    out = rec.recommend({"skin_type": "oily", "concerns": ["acne"], "sensitivities": ["fragrance"]})

Note:
  - The catalog is read-only from here; a key with select access is enough.
  - A local Turtle file (SKINCARE_ONTOLOGY_TTL) replaces the SPARQL endpoint
    for development without Fuseki.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Union

from src.skincare_recommender.config import Settings, get_settings, get_supabase_client
from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.ontologies.ontology_service import OntologyService
from src.skincare_recommender.ontologies.sparql_client import RdfGraphClient, SparqlEndpointClient
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.fallback import FallbackChainController
from src.skincare_recommender.recommendation.models import GuestProfile, RecommendationResult
from src.skincare_recommender.recommendation.repository import ProductRepository
from src.skincare_recommender.recommendation.retriever import CandidateRetriever
from src.skincare_recommender.recommendation.safety import SafetyAnalyzer

logger = get_logger("recommender")


class SkincareRecommender:
    def __init__(
        self,
        ontology: OntologyService,
        repository: ProductRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.ontology = ontology
        self.repository = repository
        self.controller = FallbackChainController(
            ontology,
            repository,
            retriever=CandidateRetriever(repository, pool_limit=self.settings.candidate_pool_limit),
            safety=SafetyAnalyzer(ontology, max_workers=self.settings.safety_max_workers),
            max_recommendations=self.settings.max_recommendations,
            pool_limit=self.settings.candidate_pool_limit,
        )

    # ------------------------------------------------------------------
    # Public APIs
    # ------------------------------------------------------------------
    def recommend(
        self,
        profile: Union[GuestProfile, Dict[str, Any]],
        token: Optional[CancellationToken] = None,
    ) -> RecommendationResult:
        """
        Recommend products for a guest profile.

        Accepts a GuestProfile or a plain dict with skin_type / concerns /
        sensitivities (raises InvalidProfile for an unknown skin type).
        Without a token, the configured request deadline applies.

        Raises:
            RecommendationUnavailable: every tier failed.
            RequestCancelled: the token was cancelled. An expired deadline
                only degrades the chain to the catalog tiers.
        """
        if not isinstance(profile, GuestProfile):
            profile = GuestProfile.from_dict(profile)
        token = token or CancellationToken(self.settings.request_deadline_seconds)

        logger.info(
            "Recommendation request (%s)",
            profile.describe(),
            extra={
                "invoking_func": "SkincareRecommender.recommend",
                "invoking_purpose": "Recommend products for a guest profile",
                "next_step": "Run fallback chain",
                "resolution": "",
            },
        )
        return self.controller.run(profile, token)

    def health_check(self) -> Dict[str, Any]:
        """Knowledge graph status plus the number of known synergy pairs."""
        token = CancellationToken(self.settings.graph_timeout_seconds)
        status = self.ontology.health_check(token)
        synergies = self.ontology.get_all_synergistic_combos(token)
        status["synergy_pairs"] = synergies.count
        return status


def build_recommender(settings: Optional[Settings] = None) -> SkincareRecommender:
    """Wire Supabase and the knowledge graph from configuration."""
    settings = settings or get_settings()

    if settings.ontology_ttl_path:
        graph_client = RdfGraphClient.from_file(settings.ontology_ttl_path)
    else:
        graph_client = SparqlEndpointClient(
            settings.sparql_endpoint, timeout=settings.graph_timeout_seconds
        )
    ontology = OntologyService(graph_client, namespace=settings.ontology_namespace)
    repository = ProductRepository(
        get_supabase_client(settings), timeout=settings.repository_timeout_seconds
    )

    logger.info(
        "Recommender ready (graph=%s)",
        getattr(graph_client, "endpoint", ""),
        extra={
            "invoking_func": "build_recommender",
            "invoking_purpose": "Wire recommender from configuration",
            "next_step": "Serve recommendation requests",
            "resolution": "",
        },
    )
    return SkincareRecommender(ontology, repository, settings)
