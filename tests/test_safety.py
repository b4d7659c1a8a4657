"""Ontology interaction analysis tests."""

import threading

import pytest

from src.skincare_recommender.ontologies.ontology_service import OntologyService
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.errors import RequestCancelled
from src.skincare_recommender.recommendation.models import ProductCandidate
from src.skincare_recommender.recommendation.safety import (
    INSUFFICIENT_DATA_NOTE,
    SafetyAnalyzer,
    determine_safety_status,
    top_ingredient_names,
)


class CountingOntology:
    """Records the peak number of concurrent interaction queries."""

    def __init__(self, inner: OntologyService):
        self.inner = inner
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def _track(self, fn, *args):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            return fn(*args)
        finally:
            with self._lock:
                self.active -= 1

    def get_ingredient_conflicts(self, names, token=None):
        return self._track(self.inner.get_ingredient_conflicts, names, token)

    def get_synergistic_combos(self, names, token=None):
        return self._track(self.inner.get_synergistic_combos, names, token)


class TestStatus:
    def test_priority(self):
        assert determine_safety_status(1, 3) == "caution_needed"
        assert determine_safety_status(0, 2) == "excellent"
        assert determine_safety_status(0, 0) == "safe"

    def test_top_names_include_canonical_aliases(self):
        names = top_ingredient_names("Aqua, Ascorbic Acid, Ceramide NP")
        assert names == ["aqua", "ascorbic acid", "vitamin c", "ceramide np", "ceramides"]


class TestAnalyzeProduct:
    def test_conflict_and_synergy(self, ontology, products):
        retinol_cream = products[3]
        analysis = SafetyAnalyzer(ontology).analyze_product(retinol_cream)

        assert analysis.ontology_analyzed
        assert analysis.conflicts_detected == 1
        assert analysis.synergies_found == 1
        assert analysis.overall_safety_status == "caution_needed"
        assert analysis.conflict_details[0]["name1"] == "Retinol"

    def test_synergy_only(self, ontology, products):
        analysis = SafetyAnalyzer(ontology).analyze_product(products[1])
        assert analysis.overall_safety_status == "excellent"
        assert analysis.synergies_found == 1
        assert analysis.conflicts_detected == 0

    def test_no_interactions(self, ontology, products):
        analysis = SafetyAnalyzer(ontology).analyze_product(products[0])
        assert analysis.ontology_analyzed
        assert analysis.overall_safety_status == "safe"

    @pytest.mark.parametrize("ingredients", ["", "Aqua", "Aqua, C"])
    def test_insufficient_data(self, ontology, ingredients):
        product = ProductCandidate(id=1, name="p", ingredient_list=ingredients)
        analysis = SafetyAnalyzer(ontology).analyze_product(product)
        assert analysis.overall_safety_status == "safe"
        assert not analysis.ontology_analyzed
        assert analysis.note == INSUFFICIENT_DATA_NOTE

    def test_graph_down(self, failing_ontology, products):
        analysis = SafetyAnalyzer(failing_ontology).analyze_product(products[3])
        assert analysis.overall_safety_status == "unknown"
        assert not analysis.ontology_analyzed
        assert "unreachable" in analysis.note


class TestAnalyzeBatch:
    def test_preserves_order_and_attaches_results(self, ontology, products):
        active = products[:5]
        out = SafetyAnalyzer(ontology, max_workers=3).analyze(active)
        assert [p.id for p in out] == [1, 2, 3, 4, 5]
        assert out[3].safety_analysis.overall_safety_status == "caution_needed"
        assert out[1].safety_analysis.overall_safety_status == "excellent"

    def test_bounded_concurrency(self, ontology, products):
        counting = CountingOntology(ontology)
        candidates = [
            ProductCandidate(id=i, name=str(i), ingredient_list="Retinol, Ascorbic Acid, Ceramide NP")
            for i in range(12)
        ]
        SafetyAnalyzer(counting, max_workers=2).analyze(candidates)
        assert counting.peak <= 2
        assert all(c.safety_analysis.conflicts_detected == 1 for c in candidates)

    def test_empty(self, ontology):
        assert SafetyAnalyzer(ontology).analyze([]) == []

    def test_cancellation_propagates(self, ontology, products):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RequestCancelled):
            SafetyAnalyzer(ontology).analyze(products[:3], token)

    def test_expired_deadline_marks_unknown(self, ontology, products):
        analyzed = SafetyAnalyzer(ontology).analyze(products[:3], CancellationToken(timeout=0))
        for c in analyzed:
            assert c.safety_analysis.overall_safety_status == "unknown"
            assert not c.safety_analysis.ontology_analyzed
