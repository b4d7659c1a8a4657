"""Candidate retrieval and sensitivity filter tests."""

import pytest

from conftest import FakeProductRepository

from src.skincare_recommender.recommendation.errors import RepositoryFailure
from src.skincare_recommender.recommendation.models import GuestProfile, ProductCandidate, SafetyFlag
from src.skincare_recommender.recommendation.retriever import (
    CandidateRetriever,
    apply_safety_filter,
    violates_sensitivity,
)


class TestSafetyFilter:
    def test_only_explicit_false_is_excluded(self):
        product = ProductCandidate(id=1, name="p", fragrance_free=SafetyFlag.FALSE)
        assert violates_sensitivity(product, {"fragrance"})
        assert not violates_sensitivity(product, {"alcohol"})
        assert not violates_sensitivity(product, set())

    def test_unknown_is_kept(self):
        product = ProductCandidate(id=1, name="p")
        assert not violates_sensitivity(product, {"fragrance", "alcohol", "paraben", "sulfate", "silicone"})

    def test_silicone(self, products):
        profile = GuestProfile.from_dict({"skin_type": "dry", "sensitivities": ["silicone"]})
        kept = apply_safety_filter(products, profile)
        assert 5 not in {p.id for p in kept}

    def test_no_survivor_violates_a_declared_sensitivity(self, products):
        profile = GuestProfile.from_dict(
            {"skin_type": "oily", "sensitivities": ["fragrance", "alcohol", "silicone"]}
        )
        for p in apply_safety_filter(products, profile):
            for s in profile.sensitivities:
                assert p.flag_for(s) is not SafetyFlag.FALSE


class TestCandidateRetriever:
    def test_retrieves_matching_safe_products(self, ontology, repository, oily_acne_profile):
        semantic = ontology.get_skin_type_recommendations("oily", ["acne"]).data
        candidates = CandidateRetriever(repository).retrieve(semantic, oily_acne_profile)

        assert [c.id for c in candidates] == [1, 2]
        assert [m.name for m in candidates[0].matched_semantic_ingredients] == ["Salicylic Acid", "Niacinamide"]
        assert [m.name for m in candidates[1].matched_semantic_ingredients] == ["Niacinamide"]

    def test_inactive_products_are_not_candidates(self, ontology, repository, oily_acne_profile):
        semantic = ontology.get_skin_type_recommendations("oily", ["acne"]).data
        candidates = CandidateRetriever(repository).retrieve(semantic, oily_acne_profile)
        assert 6 not in {c.id for c in candidates}

    def test_pool_limit(self, ontology, oily_acne_profile):
        repo = FakeProductRepository()
        semantic = ontology.get_skin_type_recommendations("oily", ["acne"]).data
        candidates = CandidateRetriever(repo, pool_limit=1).retrieve(semantic, oily_acne_profile)
        assert [c.id for c in candidates] == [1]

    def test_no_semantic_ingredients(self, repository, oily_acne_profile):
        assert CandidateRetriever(repository).retrieve([], oily_acne_profile) == []

    def test_repository_failure_propagates(self, ontology, oily_acne_profile):
        repo = FakeProductRepository()
        repo.should_fail = True
        semantic = ontology.get_skin_type_recommendations("oily", ["acne"]).data
        with pytest.raises(RepositoryFailure):
            CandidateRetriever(repo).retrieve(semantic, oily_acne_profile)
