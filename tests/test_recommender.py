"""End-to-end tests through SkincareRecommender and build_recommender."""

from unittest.mock import patch

import pytest

from conftest import ONTOLOGY_TTL, FakeProductRepository, SlowGraphClient

from src.skincare_recommender.config import Settings
from src.skincare_recommender.ontologies.sparql_client import RdfGraphClient, SparqlEndpointClient
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.ontologies.ontology_service import OntologyService
from src.skincare_recommender.recommendation.errors import (
    InvalidProfile,
    RecommendationUnavailable,
    RequestCancelled,
)
from src.skincare_recommender.recommendation.recommender import SkincareRecommender, build_recommender


class TestRecommend:
    def test_accepts_plain_dict(self, recommender):
        result = recommender.recommend(
            {"skin_type": "Oily", "concerns": ["Acne"], "sensitivities": ["Fragrance"]}
        )
        assert result.metadata.algorithm_type == "SEMANTIC_REASONING"
        assert [r.product.id for r in result.recommendations] == [1, 2]
        assert result.metadata.processing_time_ms >= 0

    def test_invalid_skin_type(self, recommender):
        with pytest.raises(InvalidProfile):
            recommender.recommend({"skin_type": "scaly"})

    def test_to_dict_contract(self, recommender, oily_acne_profile):
        out = recommender.recommend(oily_acne_profile).to_dict()

        assert set(out) == {"recommendations", "metadata", "explanation"}
        rec = out["recommendations"][0]
        assert rec["tier"] == "SEMANTIC_REASONING"
        assert rec["fragrance_free"] == "true"
        assert rec["explanation"]
        assert out["metadata"]["confidence"] == "very_high"
        assert out["explanation"]["personalization"]["skin_type"] == "oily"

    def test_same_profile_same_result(self, recommender, oily_acne_profile):
        def ranked():
            return [
                (r.product.id, r.product.final_score, r.explanation)
                for r in recommender.recommend(oily_acne_profile).recommendations
            ]

        assert ranked() == ranked()

    def test_max_recommendations_setting(self, ontology, oily_acne_profile):
        rec = SkincareRecommender(ontology, FakeProductRepository(), Settings(max_recommendations=1))
        assert len(rec.recommend(oily_acne_profile).recommendations) == 1

    def test_cancelled_request(self, recommender, oily_acne_profile):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RequestCancelled):
            recommender.recommend(oily_acne_profile, token)

    def test_health_check(self, recommender, ontology, repository):
        status = recommender.health_check()
        assert status["status"] == "connected"
        assert status["synergy_pairs"] == 3

    def test_health_check_graph_down(self, failing_ontology, repository):
        status = SkincareRecommender(failing_ontology, repository).health_check()
        assert status["status"] == "unavailable"
        assert status["synergy_pairs"] == 0


class TestRequestDeadline:
    def test_slow_graph_still_serves_recommendations(self, graph_client, oily_acne_profile):
        ontology = OntologyService(SlowGraphClient(graph_client, delay=0.4))
        settings = Settings(request_deadline_seconds=1.0, safety_max_workers=1)
        rec = SkincareRecommender(ontology, FakeProductRepository(), settings)

        result = rec.recommend(oily_acne_profile)

        assert result.metadata.algorithm_type == "SEMANTIC_REASONING"
        assert [r.product.id for r in result.recommendations] == [1, 2]
        last = result.recommendations[-1].product.safety_analysis
        assert last.overall_safety_status == "unknown"
        assert not last.ontology_analyzed
        assert "deadline" in last.note

    def test_expired_deadline_drops_to_catalog(self, recommender, repository, oily_acne_profile):
        result = recommender.recommend(oily_acne_profile, CancellationToken(timeout=0))

        assert result.metadata.algorithm_type == "DATABASE_BASIC_FALLBACK"
        assert "deadline" in result.metadata.fallback_reason
        assert [r.product.id for r in result.recommendations] == [1, 2, 5, 4]
        assert repository.calls == ["list_active_products"]

    def test_expired_deadline_with_catalog_down_is_unavailable(self, ontology, oily_acne_profile):
        repo = FakeProductRepository()
        repo.should_fail = True
        rec = SkincareRecommender(ontology, repo)
        with pytest.raises(RecommendationUnavailable):
            rec.recommend(oily_acne_profile, CancellationToken(timeout=0))

    def test_cancel_is_still_terminal_after_expiry(self, recommender, repository, oily_acne_profile):
        token = CancellationToken(timeout=0)
        token.cancel()
        with pytest.raises(RequestCancelled):
            recommender.recommend(oily_acne_profile, token)
        assert repository.calls == []


class TestBuildRecommender:
    def test_local_ontology_file(self):
        settings = Settings(supabase_url="https://x.supabase.co", supabase_key="k", ontology_ttl_path=str(ONTOLOGY_TTL))
        with patch("src.skincare_recommender.recommendation.recommender.get_supabase_client") as get_client:
            rec = build_recommender(settings)

        get_client.assert_called_once_with(settings)
        assert isinstance(rec.ontology.client, RdfGraphClient)
        assert rec.settings is settings

    def test_sparql_endpoint(self):
        settings = Settings(sparql_endpoint="http://fuseki.test/skincare-db/sparql", graph_timeout_seconds=3.0)
        with patch("src.skincare_recommender.recommendation.recommender.get_supabase_client"):
            rec = build_recommender(settings)

        client = rec.ontology.client
        assert isinstance(client, SparqlEndpointClient)
        assert client.endpoint == "http://fuseki.test/skincare-db/sparql"
        assert client.timeout == 3.0
        client.close()
