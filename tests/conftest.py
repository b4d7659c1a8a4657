"""Shared fixtures: in-memory knowledge graph, fake catalog, guest profiles."""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from src.skincare_recommender.config import Settings
from src.skincare_recommender.ontologies.ontology_service import OntologyService
from src.skincare_recommender.ontologies.sparql_client import RdfGraphClient
from src.skincare_recommender.recommendation.errors import RepositoryFailure, TransientQueryFailure
from src.skincare_recommender.recommendation.models import GuestProfile, ProductCandidate
from src.skincare_recommender.recommendation.recommender import SkincareRecommender
from src.skincare_recommender.recommendation.repository import row_to_candidate

FIXTURES = Path(__file__).parent / "fixtures"
ONTOLOGY_TTL = FIXTURES / "skincare_ontology.ttl"


# ============================================================================
# Catalog rows (Supabase shape)
# ============================================================================

def _row(pid, name, brand, ingredients, *, active=True, description=None, **flags) -> Dict[str, Any]:
    row = {
        "id": pid,
        "name": name,
        "brands": {"name": brand},
        "main_category": "Skincare",
        "description": description,
        "ingredient_list": ingredients,
        "product_url": f"https://shop.example/p/{pid}",
        "local_image_path": None,
        "is_active": active,
        "fragrance_free": None,
        "alcohol_free": None,
        "paraben_free": None,
        "sulfate_free": None,
        "silicone_free": None,
    }
    row.update(flags)
    return row


PRODUCT_ROWS: List[Dict[str, Any]] = [
    _row(
        1, "Clear Skin BHA Toner", "Acme",
        "Aqua, Salicylic Acid, Niacinamide, Glycerin",
        description="Daily acne toner",
        fragrance_free=True, alcohol_free=True, paraben_free=True, sulfate_free=True,
    ),
    _row(
        2, "Hydra Serum", "Dewy",
        "Aqua, Sodium Hyaluronate, Niacinamide, Panthenol",
        description="Hydrating serum for all skin types",
        fragrance_free=True,
    ),
    _row(
        3, "Perfumed Acne Gel", "Acme",
        "Aqua, Salicylic Acid, Parfum",
        fragrance_free=False, alcohol_free=True,
    ),
    _row(
        4, "Night Retinol Cream", "Luna",
        "Aqua, Retinol, Ascorbic Acid, Ceramide NP",
        description="Anti-aging night cream for wrinkles",
    ),
    _row(
        5, "Plain Moisturizer", "Basic Co",
        "Aqua, Glycerin, Dimethicone",
        fragrance_free=True, alcohol_free=True, paraben_free=True, sulfate_free=True, silicone_free=False,
    ),
    _row(
        6, "Discontinued BHA", "Acme",
        "Salicylic Acid, Witch Hazel",
        active=False, fragrance_free=True,
    ),
]


# ============================================================================
# Mock Services
# ============================================================================

class FakeProductRepository:
    """
    Stand-in for ProductRepository backed by PRODUCT_ROWS.

    should_fail makes every call raise RepositoryFailure; fail_on limits
    failures to the named methods.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = list(PRODUCT_ROWS if rows is None else rows)
        self.should_fail = False
        self.fail_on = set()
        self.calls: List[str] = []

    def _check(self, method: str, token) -> None:
        self.calls.append(method)
        if token is not None:
            token.raise_if_cancelled()
        if self.should_fail or method in self.fail_on:
            raise RepositoryFailure(f"{method}: catalog unreachable")

    def list_active_products(self, limit: int = 100, token=None) -> List[ProductCandidate]:
        self._check("list_active_products", token)
        rows = [
            r for r in sorted(self.rows, key=lambda r: r["id"])
            if r.get("is_active") and (r.get("ingredient_list") or "").strip()
        ]
        return [row_to_candidate(r) for r in rows[:limit]]

    def list_any_products(self, limit: int = 10, token=None) -> List[ProductCandidate]:
        self._check("list_any_products", token)
        rows = [r for r in sorted(self.rows, key=lambda r: r["id"]) if r.get("name")]
        return [row_to_candidate(r) for r in rows[:limit]]


class FailingGraphClient:
    """Knowledge graph that is down: every query raises."""

    endpoint = "http://graph.invalid/sparql"

    def __init__(self):
        self.call_count = 0

    def select(self, query: str, token=None):
        self.call_count += 1
        if token is not None:
            token.raise_if_cancelled()
        raise TransientQueryFailure("SPARQL endpoint unreachable: connection refused")


class SlowGraphClient:
    """Healthy graph that takes `delay` seconds per query."""

    endpoint = "rdflib:slow"

    def __init__(self, inner: RdfGraphClient, delay: float):
        self.inner = inner
        self.delay = delay

    def select(self, query: str, token=None):
        if token is not None:
            token.raise_if_expired()
        time.sleep(self.delay)
        return self.inner.select(query)


# ============================================================================
# Knowledge graph fixtures
# ============================================================================

@pytest.fixture(scope="session")
def graph_client() -> RdfGraphClient:
    return RdfGraphClient.from_file(str(ONTOLOGY_TTL))


@pytest.fixture
def ontology(graph_client) -> OntologyService:
    return OntologyService(graph_client)


@pytest.fixture
def failing_ontology() -> OntologyService:
    return OntologyService(FailingGraphClient())


# ============================================================================
# Catalog fixtures
# ============================================================================

@pytest.fixture
def repository() -> FakeProductRepository:
    return FakeProductRepository()


@pytest.fixture
def products() -> List[ProductCandidate]:
    return [row_to_candidate(r) for r in PRODUCT_ROWS]


# ============================================================================
# Profile fixtures
# ============================================================================

@pytest.fixture
def oily_acne_profile() -> GuestProfile:
    return GuestProfile.from_dict(
        {"skin_type": "oily", "concerns": ["acne"], "sensitivities": ["fragrance"]}
    )


@pytest.fixture
def sensitive_profile() -> GuestProfile:
    return GuestProfile.from_dict(
        {"skin_type": "sensitive", "concerns": ["redness"], "sensitivities": ["alcohol"]}
    )


@pytest.fixture
def normal_wrinkles_profile() -> GuestProfile:
    return GuestProfile.from_dict({"skin_type": "normal", "concerns": ["wrinkles"]})


# ============================================================================
# Recommender fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(request_deadline_seconds=30.0, safety_max_workers=3)


@pytest.fixture
def recommender(ontology, repository, settings) -> SkincareRecommender:
    return SkincareRecommender(ontology, repository, settings)
