"""
fallback.py

Fallback chain for recommendations, as an explicit state machine.

    SEMANTIC_REASONING ─▶ BASIC_ONTOLOGY_FALLBACK ─▶ DATABASE_BASIC_FALLBACK
            │                       │                          │
            └───────────────────────┴──────────▶ EMERGENCY_FALLBACK ─▶ ERROR

Each tier returns a TierOutcome; next_state() is a pure transition function
over (state, signal):

    NO_DATA          advance one tier
    PIPELINE_FAILED  unexpected error / no candidates  -> DATABASE_BASIC_FALLBACK
    RETRIEVAL_FAILED catalog raised                    -> EMERGENCY_FALLBACK
    SUCCESS          stop, return the tier's result

Every tier produces the same RecommendationResult shape, so callers never
branch on the tier. ERROR raises RecommendationUnavailable; cancel() aborts the chain
immediately. An expired deadline is not terminal: graph queries fail fast as
DeadlineExceeded and the catalog tiers still run.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.ontologies.ontology_service import OntologyService
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.errors import (
    RecommendationUnavailable,
    RepositoryFailure,
    RequestCancelled,
)
from src.skincare_recommender.recommendation.explanations import (
    build_explanation,
    build_tier_explanation,
    system_explanation,
)
from src.skincare_recommender.recommendation.models import (
    GuestProfile,
    Recommendation,
    RecommendationMetadata,
    RecommendationResult,
)
from src.skincare_recommender.recommendation.repository import ProductRepository
from src.skincare_recommender.recommendation.retriever import (
    CandidateRetriever,
    apply_safety_filter,
)
from src.skincare_recommender.recommendation.safety import SafetyAnalyzer
from src.skincare_recommender.recommendation.scoring import (
    HybridScorer,
    database_score,
    rank,
    safety_score,
)

logger = get_logger("fallback")

BASIC_ONTOLOGY_INGREDIENTS = 20
EMERGENCY_PRODUCTS = 10
EMERGENCY_SCORE = 50


class FallbackState(str, Enum):
    SEMANTIC_REASONING = "SEMANTIC_REASONING"
    BASIC_ONTOLOGY_FALLBACK = "BASIC_ONTOLOGY_FALLBACK"
    DATABASE_BASIC_FALLBACK = "DATABASE_BASIC_FALLBACK"
    EMERGENCY_FALLBACK = "EMERGENCY_FALLBACK"
    ERROR = "ERROR"


class Signal(str, Enum):
    SUCCESS = "SUCCESS"
    NO_DATA = "NO_DATA"
    PIPELINE_FAILED = "PIPELINE_FAILED"
    RETRIEVAL_FAILED = "RETRIEVAL_FAILED"


TIER_ORDER: List[FallbackState] = [
    FallbackState.SEMANTIC_REASONING,
    FallbackState.BASIC_ONTOLOGY_FALLBACK,
    FallbackState.DATABASE_BASIC_FALLBACK,
    FallbackState.EMERGENCY_FALLBACK,
    FallbackState.ERROR,
]

TIER_CONFIDENCE: Dict[FallbackState, str] = {
    FallbackState.SEMANTIC_REASONING: "very_high",
    FallbackState.BASIC_ONTOLOGY_FALLBACK: "medium",
    FallbackState.DATABASE_BASIC_FALLBACK: "medium",
    FallbackState.EMERGENCY_FALLBACK: "low",
}


def next_state(state: FallbackState, signal: Signal) -> FallbackState:
    if state is FallbackState.ERROR:
        raise ValueError("ERROR is terminal")
    if signal is Signal.SUCCESS:
        return state
    if state is FallbackState.EMERGENCY_FALLBACK:
        return FallbackState.ERROR
    if signal is Signal.RETRIEVAL_FAILED:
        return FallbackState.EMERGENCY_FALLBACK
    if signal is Signal.PIPELINE_FAILED:
        if state is FallbackState.DATABASE_BASIC_FALLBACK:
            return FallbackState.EMERGENCY_FALLBACK
        return FallbackState.DATABASE_BASIC_FALLBACK
    return TIER_ORDER[TIER_ORDER.index(state) + 1]


@dataclass
class TierOutcome:
    signal: Signal
    result: Optional[RecommendationResult] = None
    reason: str = ""


class FallbackChainController:
    def __init__(
        self,
        ontology: OntologyService,
        repository: ProductRepository,
        *,
        retriever: Optional[CandidateRetriever] = None,
        scorer: Optional[HybridScorer] = None,
        safety: Optional[SafetyAnalyzer] = None,
        max_recommendations: int = 12,
        pool_limit: int = 100,
    ) -> None:
        self.ontology = ontology
        self.repository = repository
        self.retriever = retriever or CandidateRetriever(repository, pool_limit=pool_limit)
        self.scorer = scorer or HybridScorer()
        self.safety = safety or SafetyAnalyzer(ontology)
        self.max_recommendations = max_recommendations
        self.pool_limit = pool_limit

        self._tiers: Dict[FallbackState, Callable[..., TierOutcome]] = {
            FallbackState.SEMANTIC_REASONING: self._semantic_tier,
            FallbackState.BASIC_ONTOLOGY_FALLBACK: self._basic_ontology_tier,
            FallbackState.DATABASE_BASIC_FALLBACK: self._database_tier,
            FallbackState.EMERGENCY_FALLBACK: self._emergency_tier,
        }

    # ------------------------------------------------------------------
    # Orchestrator loop
    # ------------------------------------------------------------------
    def run(self, profile: GuestProfile, token: Optional[CancellationToken] = None) -> RecommendationResult:
        token = token or CancellationToken()
        started = time.perf_counter()
        state = FallbackState.SEMANTIC_REASONING
        reasons: List[str] = []

        while state is not FallbackState.ERROR:
            token.raise_if_cancelled()
            outcome = self._run_tier(state, profile, token, started)

            if outcome.signal is Signal.SUCCESS:
                result = outcome.result
                result.metadata.processing_time_ms = _elapsed_ms(started)
                result.metadata.fallback_reason = "; ".join(reasons) or None
                logger.info(
                    "%s produced %d recommendations in %dms (%s)",
                    state.value,
                    len(result.recommendations),
                    result.metadata.processing_time_ms,
                    profile.describe(),
                    extra={
                        "invoking_func": "FallbackChainController.run",
                        "invoking_purpose": "Produce recommendations through the fallback chain",
                        "next_step": "Return result to caller",
                        "resolution": "",
                    },
                )
                return result

            new_state = next_state(state, outcome.signal)
            reasons.append(f"{state.value}: {outcome.reason}")
            logger.warning(
                "Tier %s -> %s after %dms (%s): %s",
                state.value,
                new_state.value,
                _elapsed_ms(started),
                profile.describe(),
                outcome.reason,
                extra={
                    "invoking_func": "FallbackChainController.run",
                    "invoking_purpose": "Degrade to the next recommendation tier",
                    "next_step": f"Run {new_state.value}",
                    "resolution": "Check knowledge graph / catalog availability",
                },
            )
            state = new_state

        logger.error(
            "All recommendation tiers failed after %dms (%s)",
            _elapsed_ms(started),
            profile.describe(),
            extra={
                "invoking_func": "FallbackChainController.run",
                "invoking_purpose": "Produce recommendations through the fallback chain",
                "next_step": "Raise RecommendationUnavailable",
                "resolution": "; ".join(reasons),
            },
        )
        raise RecommendationUnavailable()

    def _run_tier(
        self,
        state: FallbackState,
        profile: GuestProfile,
        token: CancellationToken,
        started: float,
    ) -> TierOutcome:
        tier = self._tiers[state]
        try:
            return tier(profile, token)
        except RequestCancelled:
            raise
        except RepositoryFailure as exc:
            return TierOutcome(Signal.RETRIEVAL_FAILED, reason=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Unexpected error in %s after %dms: %s",
                state.value,
                _elapsed_ms(started),
                exc,
                exc_info=True,
                extra={
                    "invoking_func": "FallbackChainController._run_tier",
                    "invoking_purpose": "Run one recommendation tier",
                    "next_step": "Escalate to a fallback tier",
                    "resolution": "",
                },
            )
            return TierOutcome(Signal.PIPELINE_FAILED, reason=f"{exc.__class__.__name__}: {exc}")

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------
    def _semantic_tier(self, profile: GuestProfile, token: CancellationToken) -> TierOutcome:
        semantic = self.ontology.get_skin_type_recommendations(
            profile.skin_type.value, profile.concerns, token
        )
        if semantic.count == 0:
            return TierOutcome(Signal.NO_DATA, reason=semantic.error or "no semantic ingredients")

        candidates = self.retriever.retrieve(semantic.data, profile, token)
        if not candidates:
            return TierOutcome(Signal.PIPELINE_FAILED, reason="no products matched semantic ingredients")

        ranked = self.scorer.score(candidates, profile, semantic.data)
        top = ranked[: self.max_recommendations]
        self.safety.analyze(top, token)

        return TierOutcome(
            Signal.SUCCESS,
            result=self._result(
                FallbackState.SEMANTIC_REASONING,
                profile,
                [Recommendation(p, build_explanation(p, profile), FallbackState.SEMANTIC_REASONING.value) for p in top],
                total_candidates=len(candidates),
                semantic_count=semantic.count,
            ),
        )

    def _basic_ontology_tier(self, profile: GuestProfile, token: CancellationToken) -> TierOutcome:
        general = self.ontology.get_all_ingredients(BASIC_ONTOLOGY_INGREDIENTS, token)
        if general.count == 0:
            return TierOutcome(Signal.NO_DATA, reason=general.error or "ontology has no ingredients")

        candidates = self.retriever.retrieve(general.data, profile, token)
        if not candidates:
            return TierOutcome(Signal.PIPELINE_FAILED, reason="no products matched ontology ingredients")

        top = self.scorer.score(candidates, profile, general.data)[: self.max_recommendations]
        tier = FallbackState.BASIC_ONTOLOGY_FALLBACK
        return TierOutcome(
            Signal.SUCCESS,
            result=self._result(
                tier,
                profile,
                [Recommendation(p, build_explanation(p, profile), tier.value) for p in top],
                total_candidates=len(candidates),
                semantic_count=general.count,
            ),
        )

    def _database_tier(self, profile: GuestProfile, token: CancellationToken) -> TierOutcome:
        products = apply_safety_filter(
            self.repository.list_active_products(self.pool_limit, token), profile
        )
        if not products:
            return TierOutcome(Signal.NO_DATA, reason="no active products passed the safety filter")

        for p in products:
            p.safety_score = safety_score(p, profile.sensitivities)
            p.final_score = database_score(p, profile)
            p.confidence_level = "medium"
        top = rank(products)[: self.max_recommendations]
        tier = FallbackState.DATABASE_BASIC_FALLBACK
        return TierOutcome(
            Signal.SUCCESS,
            result=self._result(
                tier,
                profile,
                [Recommendation(p, build_tier_explanation(p, profile, tier.value), tier.value) for p in top],
                total_candidates=len(products),
                semantic_count=0,
            ),
        )

    def _emergency_tier(self, profile: GuestProfile, token: CancellationToken) -> TierOutcome:
        products = self.repository.list_any_products(EMERGENCY_PRODUCTS, token)
        for p in products:
            p.final_score = EMERGENCY_SCORE
            p.confidence_level = "low"
        top = rank(products)[: self.max_recommendations]
        tier = FallbackState.EMERGENCY_FALLBACK
        return TierOutcome(
            Signal.SUCCESS,
            result=self._result(
                tier,
                profile,
                [Recommendation(p, build_tier_explanation(p, profile, tier.value), tier.value) for p in top],
                total_candidates=len(products),
                semantic_count=0,
            ),
        )

    def _result(
        self,
        tier: FallbackState,
        profile: GuestProfile,
        recommendations: List[Recommendation],
        *,
        total_candidates: int,
        semantic_count: int,
    ) -> RecommendationResult:
        return RecommendationResult(
            recommendations=recommendations[: self.max_recommendations],
            metadata=RecommendationMetadata(
                algorithm_type=tier.value,
                confidence=TIER_CONFIDENCE[tier],
                total_candidates=total_candidates,
                semantic_ingredients_found=semantic_count,
            ),
            explanation=system_explanation(profile, tier.value, semantic_count),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
