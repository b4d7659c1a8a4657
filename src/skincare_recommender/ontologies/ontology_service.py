"""
ontology_service.py

Purpose:
    Parametrized SPARQL queries over the skincare ontology:

      - ingredients recommended for a skin type (optionally per concern)
      - pairwise ingredient conflicts   (sc:incompatibleWith)
      - pairwise ingredient synergies   (sc:synergisticWith)
      - unfiltered ingredient / synergy listings for fallback + diagnostics
      - single-ingredient detail lookup

Failure policy:
    Every public method returns a QueryResult and never raises on transport
    or parse problems; the failure reason lands in QueryResult.error so the
    fallback chain can tell "no data" apart from "query failed".
    RequestCancelled is the only exception that propagates; an expired
    request deadline is reported like any other query failure.

Interaction relations are stored one-directionally in the graph
(A incompatibleWith B without the inverse), so both directions are queried
and rows are deduplicated by unordered pair.
"""
from __future__ import annotations

import re
import time
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from rdflib import Literal, Namespace

from src.skincare_recommender.config import DEFAULT_ONTOLOGY_NS
from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.errors import RequestCancelled
from src.skincare_recommender.recommendation.models import QueryResult, SemanticIngredient

logger = get_logger("ontology_service")

# Concern -> keywords searched in ingredient name / benefit / function
CONCERN_KEYWORDS: Dict[str, List[str]] = {
    "acne": ["acne", "blemish", "salicylic", "benzoyl", "anti-acne"],
    "wrinkles": ["anti-aging", "retinol", "peptide", "collagen", "wrinkle"],
    "dark_spots": ["brightening", "vitamin c", "kojic", "arbutin", "pigmentation"],
    "dryness": ["moisturizing", "hydrating", "hyaluronic", "ceramide", "humectant"],
    "sensitivity": ["gentle", "soothing", "calming", "anti-inflammatory"],
    "pores": ["pore", "minimizing", "blackhead", "niacinamide"],
    "oiliness": ["oil control", "sebum", "mattifying", "astringent"],
    "redness": ["anti-inflammatory", "soothing", "calming", "redness"],
}

DEFAULT_RELEVANCE = 0.7

_LOCAL_NAME = re.compile(r"^[A-Za-z0-9_]+$")


def concern_keywords(concern: str) -> List[str]:
    return CONCERN_KEYWORDS.get(concern.lower(), [concern.lower()])


def concern_relevance(ingredient: SemanticIngredient, concerns: Iterable[str]) -> float:
    concerns = sorted(concerns)
    if not concerns:
        return DEFAULT_RELEVANCE
    text = " ".join(
        [ingredient.name or "", ingredient.benefit or "", ingredient.function or ""]
    ).lower()
    score = 0.0
    for concern in concerns:
        for keyword in concern_keywords(concern):
            if keyword in text:
                score += 0.2
    return round(min(1.0, score), 4)


def ontology_confidence(row: Dict[str, str], treats_concern: bool) -> str:
    described = sum(1 for k in ("benefit", "function", "explanation") if row.get(k))
    if described == 3:
        return "very_high" if treats_concern else "high"
    if described:
        return "medium"
    return "low"


def _pair_key(a: str, b: str) -> Tuple[str, str]:
    x, y = a.strip().lower(), b.strip().lower()
    return (x, y) if x <= y else (y, x)


class OntologyService:
    def __init__(self, client, *, namespace: str = DEFAULT_ONTOLOGY_NS) -> None:
        # client: SparqlEndpointClient | RdfGraphClient (anything with select())
        self.client = client
        self.ns = Namespace(namespace)
        self.prefixes = "\n".join(
            [
                f"PREFIX sc: <{namespace}>",
                "PREFIX rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#>",
                "PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>",
                "PREFIX owl: <http://www.w3.org/2002/07/owl#>",
                "PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>",
            ]
        )

    # ------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------
    def _run(
        self,
        label: str,
        query: str,
        token: Optional[CancellationToken],
    ) -> Tuple[Optional[List[Dict[str, str]]], Optional[str]]:
        started = time.perf_counter()
        try:
            rows = self.client.select(f"{self.prefixes}\n{query}", token)
        except RequestCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "%s query failed after %dms: %s",
                label,
                int((time.perf_counter() - started) * 1000),
                exc,
                extra={
                    "invoking_func": f"OntologyService.{label}",
                    "invoking_purpose": "Query the skincare knowledge graph",
                    "next_step": "Return empty QueryResult with error",
                    "resolution": "Check SPARQL endpoint availability",
                },
            )
            return None, str(exc) or exc.__class__.__name__
        logger.debug(
            "%s returned %d rows in %dms",
            label,
            len(rows),
            int((time.perf_counter() - started) * 1000),
        )
        return rows, None

    def _iri(self, local_name: str) -> Optional[str]:
        if not _LOCAL_NAME.match(local_name or ""):
            return None
        return self.ns[local_name].n3()

    @staticmethod
    def _name_filter(var: str, names: Sequence[str]) -> str:
        literals = ", ".join(Literal(n.strip().lower()).n3() for n in names)
        return f"LCASE(STR({var})) IN ({literals})"

    @staticmethod
    def _clean_names(names: Iterable[str]) -> List[str]:
        seen: Set[str] = set()
        out: List[str] = []
        for n in names or []:
            if not isinstance(n, str):
                continue
            key = n.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            out.append(n.strip())
        return out

    # ------------------------------------------------------------------
    # Public APIs
    # ------------------------------------------------------------------
    def get_skin_type_recommendations(
        self,
        skin_type: str,
        concerns: Iterable[str] = (),
        token: Optional[CancellationToken] = None,
    ) -> QueryResult[SemanticIngredient]:
        """
        Ingredients linked to the skin type via sc:recommendedFor, optionally
        restricted to those that sc:treatsConcern one of the concerns.

        Zero rows is a valid, empty result.
        """
        skin_iri = self._iri(skin_type)
        if skin_iri is None:
            return QueryResult.failed(f"invalid skin type: {skin_type!r}")

        concerns = sorted({c for c in concerns or [] if c})
        concern_iris = [iri for iri in (self._iri(c) for c in concerns) if iri]

        concern_block = ""
        if concern_iris:
            in_list = ", ".join(concern_iris)
            concern_block = (
                f"?ingredient sc:treatsConcern ?treated .\n"
                f"  FILTER(?treated IN ({in_list}))"
            )

        query = f"""
SELECT DISTINCT ?ingredient ?name ?benefit ?function ?explanation ?treated
WHERE {{
  ?ingredient rdf:type sc:Ingredient ;
              sc:IngredientName ?name ;
              sc:recommendedFor {skin_iri} .
  OPTIONAL {{ ?ingredient sc:providesIngredientBenefit ?benefit }}
  OPTIONAL {{ ?ingredient sc:hasFunction ?function }}
  OPTIONAL {{ ?ingredient sc:explanation ?explanation }}
  {concern_block}
}}
ORDER BY ?name
"""
        rows, error = self._run("get_skin_type_recommendations", query, token)
        if error is not None:
            return QueryResult.failed(error)

        ingredients = self._to_semantic_ingredients(rows or [], concerns, bool(concern_iris))
        logger.info(
            "Ontology returned %d ingredients for %s skin (concerns=%s)",
            len(ingredients),
            skin_type,
            ",".join(concerns) or "-",
            extra={
                "invoking_func": "get_skin_type_recommendations",
                "invoking_purpose": "Fetch semantically relevant ingredients",
                "next_step": "Map ingredients onto product catalog",
                "resolution": "",
            },
        )
        return QueryResult.of(ingredients)

    def _to_semantic_ingredients(
        self,
        rows: List[Dict[str, str]],
        concerns: Sequence[str],
        concern_filtered: bool,
    ) -> List[SemanticIngredient]:
        by_name: Dict[str, SemanticIngredient] = {}
        for row in rows:
            name = (row.get("name") or "").strip()
            if not name:
                continue
            key = name.lower()
            if key in by_name:
                continue
            treats = concern_filtered and bool(row.get("treated"))
            ing = SemanticIngredient(
                name=name,
                benefit=row.get("benefit"),
                function=row.get("function"),
                explanation=row.get("explanation"),
                treats_concern=treats,
                ontology_confidence=ontology_confidence(row, treats),
            )
            ing.concern_relevance_score = concern_relevance(ing, concerns)
            by_name[key] = ing

        def rank(ing: SemanticIngredient) -> Tuple[float, bool, str]:
            boost = 1.2 if ing.is_high_confidence else 1.0
            return (-(ing.concern_relevance_score * boost), not ing.treats_concern, ing.name.lower())

        return sorted(by_name.values(), key=rank)

    def get_all_ingredients(
        self, limit: int = 50, token: Optional[CancellationToken] = None
    ) -> QueryResult[SemanticIngredient]:
        query = f"""
SELECT DISTINCT ?ingredient ?name ?benefit ?function
WHERE {{
  ?ingredient rdf:type sc:Ingredient ;
              sc:IngredientName ?name .
  OPTIONAL {{ ?ingredient sc:providesIngredientBenefit ?benefit }}
  OPTIONAL {{ ?ingredient sc:hasFunction ?function }}
}}
ORDER BY ?name
LIMIT {int(limit)}
"""
        rows, error = self._run("get_all_ingredients", query, token)
        if error is not None:
            return QueryResult.failed(error)
        return QueryResult.of(self._to_semantic_ingredients(rows or [], [], False))

    def get_ingredient_details(
        self, name: str, token: Optional[CancellationToken] = None
    ) -> QueryResult[Dict[str, str]]:
        """
        Case-insensitive lookup of one described ingredient.

        Only ingredients carrying benefit, function and explanation are
        returned; whatItDoes and safety are included when present.
        """
        cleaned = self._clean_names([name])
        if not cleaned:
            return QueryResult.of([])

        query = f"""
SELECT ?ingredient ?name ?benefit ?function ?explanation ?whatItDoes ?safety
WHERE {{
  ?ingredient rdf:type sc:Ingredient ;
              sc:IngredientName ?name ;
              sc:providesIngredientBenefit ?benefit ;
              sc:hasFunction ?function ;
              sc:explanation ?explanation .
  OPTIONAL {{ ?ingredient sc:whatItDoes ?whatItDoes }}
  OPTIONAL {{ ?ingredient sc:safety ?safety }}
  FILTER({self._name_filter("?name", cleaned)})
}}
ORDER BY ?name
"""
        rows, error = self._run("get_ingredient_details", query, token)
        if error is not None:
            return QueryResult.failed(error)

        details: List[Dict[str, str]] = []
        seen: Set[str] = set()
        for row in rows or []:
            if row["name"].lower() in seen:
                continue
            seen.add(row["name"].lower())
            details.append(
                {
                    k: row[k]
                    for k in ("name", "benefit", "function", "explanation", "whatItDoes", "safety")
                    if row.get(k)
                }
            )
        if not details:
            logger.info(
                "No ontology details for ingredient %r",
                name,
                extra={
                    "invoking_func": "get_ingredient_details",
                    "invoking_purpose": "Describe a single ingredient",
                    "next_step": "Return empty QueryResult",
                    "resolution": "Add the ingredient to the ontology if it should be known",
                },
            )
        return QueryResult.of(details)

    def _pairwise(
        self,
        label: str,
        predicate: str,
        names: Iterable[str],
        token: Optional[CancellationToken],
        extra_filter: str = "",
    ) -> QueryResult[Dict[str, str]]:
        cleaned = self._clean_names(names)
        if len(cleaned) < 2:
            return QueryResult.of([])

        query = f"""
SELECT DISTINCT ?name1 ?name2
WHERE {{
  {{ ?ing1 sc:{predicate} ?ing2 . }}
  UNION
  {{ ?ing2 sc:{predicate} ?ing1 . }}
  ?ing1 sc:IngredientName ?name1 .
  ?ing2 sc:IngredientName ?name2 .
  FILTER(?ing1 != ?ing2)
  FILTER({self._name_filter("?name1", cleaned)})
  FILTER({self._name_filter("?name2", cleaned)})
  {extra_filter}
}}
ORDER BY ?name1 ?name2
"""
        rows, error = self._run(label, query, token)
        if error is not None:
            return QueryResult.failed(error)
        return QueryResult.of(self._dedupe_pairs(rows or []))

    @staticmethod
    def _dedupe_pairs(rows: List[Dict[str, str]]) -> List[Dict[str, str]]:
        seen: Set[Tuple[str, str]] = set()
        out: List[Dict[str, str]] = []
        for row in rows:
            a, b = row.get("name1", ""), row.get("name2", "")
            if not a or not b:
                continue
            key = _pair_key(a, b)
            if key in seen or key[0] == key[1]:
                continue
            seen.add(key)
            first, second = sorted([a, b], key=str.lower)
            out.append({"name1": first, "name2": second})
        return out

    def get_ingredient_conflicts(
        self, names: Iterable[str], token: Optional[CancellationToken] = None
    ) -> QueryResult[Dict[str, str]]:
        result = self._pairwise("get_ingredient_conflicts", "incompatibleWith", names, token)
        for row in result.data:
            row["warning"] = "Avoid combination"
        return result

    def get_synergistic_combos(
        self, names: Iterable[str], token: Optional[CancellationToken] = None
    ) -> QueryResult[Dict[str, str]]:
        result = self._pairwise(
            "get_synergistic_combos",
            "synergisticWith",
            names,
            token,
            extra_filter=(
                "FILTER NOT EXISTS { { ?ing1 sc:incompatibleWith ?ing2 } "
                "UNION { ?ing2 sc:incompatibleWith ?ing1 } }"
            ),
        )
        for row in result.data:
            row["recommendation"] = "Recommended combination"
        return result

    def get_all_synergistic_combos(
        self, token: Optional[CancellationToken] = None
    ) -> QueryResult[Dict[str, str]]:
        """Unfiltered synergy listing; diagnostics only."""
        query = """
SELECT DISTINCT ?name1 ?name2
WHERE {
  ?ing1 sc:synergisticWith ?ing2 ;
        sc:IngredientName ?name1 .
  ?ing2 sc:IngredientName ?name2 .
  FILTER(?ing1 != ?ing2)
}
ORDER BY ?name1 ?name2
"""
        started = time.perf_counter()
        rows, error = self._run("get_all_synergistic_combos", query, token)
        if error is not None:
            return QueryResult.failed(error)
        pairs = self._dedupe_pairs(rows or [])
        logger.info(
            "get_all_synergistic_combos: %d pairs in %dms",
            len(pairs),
            int((time.perf_counter() - started) * 1000),
            extra={
                "invoking_func": "get_all_synergistic_combos",
                "invoking_purpose": "Diagnostics listing of ontology synergies",
                "next_step": "",
                "resolution": "",
            },
        )
        return QueryResult.of(pairs)

    def health_check(self, token: Optional[CancellationToken] = None) -> Dict[str, object]:
        rows, error = self._run(
            "health_check", "SELECT (COUNT(*) AS ?count) WHERE { ?s ?p ?o }", token
        )
        endpoint = getattr(self.client, "endpoint", "")
        if error is not None:
            return {"status": "unavailable", "triple_count": 0, "endpoint": endpoint, "error": error}
        count = int((rows or [{}])[0].get("count", "0") or 0)
        return {"status": "connected", "triple_count": count, "endpoint": endpoint, "error": None}
