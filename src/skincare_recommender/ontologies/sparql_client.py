"""
sparql_client.py

Purpose:
    Transport layer for the skincare knowledge graph. Two interchangeable
    clients expose the same contract:

        select(query, token) -> List[Dict[str, str]]   # variable -> lexical value

    - SparqlEndpointClient: remote SPARQL endpoint (Apache Jena Fuseki style),
      HTTP POST with a form-encoded `query` parameter, JSON result bindings.
    - RdfGraphClient: the same queries evaluated by rdflib against a local
      Turtle/OWL file. Used for local development and the test-suite.

    Both raise TransientQueryFailure on transport or parse problems; turning
    those into empty results is the job of OntologyService.
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import rdflib

from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.errors import TransientQueryFailure

logger = get_logger("sparql_client")

SPARQL_JSON = "application/sparql-results+json"


def parse_bindings(payload: Any) -> List[Dict[str, str]]:
    """
    Flatten a SPARQL 1.1 JSON result document into plain rows.

    Zero bindings is a valid empty result; a document without
    `results.bindings` is treated as malformed.
    """
    if not isinstance(payload, dict):
        raise TransientQueryFailure("SPARQL response is not a JSON object")
    results = payload.get("results")
    if not isinstance(results, dict) or not isinstance(results.get("bindings"), list):
        raise TransientQueryFailure("SPARQL response has no results.bindings")

    rows: List[Dict[str, str]] = []
    for binding in results["bindings"]:
        row: Dict[str, str] = {}
        for var, term in (binding or {}).items():
            if isinstance(term, dict) and "value" in term:
                row[var] = str(term["value"])
        rows.append(row)
    return rows


class SparqlEndpointClient:
    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 8.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        # One pooled client per process; read-only usage needs no locking.
        self._http = http_client or httpx.Client()

    def select(self, query: str, token: Optional[CancellationToken] = None) -> List[Dict[str, str]]:
        timeout = self.timeout
        if token is not None:
            token.raise_if_expired()
            timeout = token.remaining(self.timeout)
            if timeout <= 0:
                token.raise_if_expired()

        try:
            resp = self._http.post(
                self.endpoint,
                data={"query": query},
                headers={"Accept": SPARQL_JSON},
                timeout=timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.TimeoutException as exc:
            raise TransientQueryFailure(f"SPARQL endpoint timed out after {timeout:.1f}s") from exc
        except httpx.HTTPStatusError as exc:
            raise TransientQueryFailure(
                f"SPARQL endpoint returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientQueryFailure(f"SPARQL endpoint unreachable: {exc}") from exc
        except ValueError as exc:
            raise TransientQueryFailure("SPARQL endpoint returned a non-JSON body") from exc

        return parse_bindings(payload)

    def close(self) -> None:
        self._http.close()


class RdfGraphClient:
    def __init__(self, graph: rdflib.Graph, *, source: str = "in-memory") -> None:
        self.graph = graph
        self.endpoint = f"rdflib:{source}"
        # rdflib query parsing is not thread-safe
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str, fmt: Optional[str] = None) -> "RdfGraphClient":
        p = Path(path)
        g = rdflib.Graph()
        g.parse(str(p), format=fmt or ("turtle" if p.suffix in {".ttl", ".n3"} else None))
        logger.info(
            "Loaded %d triples from %s",
            len(g),
            p,
            extra={
                "invoking_func": "RdfGraphClient.from_file",
                "invoking_purpose": "Load local ontology file for SPARQL evaluation",
                "next_step": "Serve ontology queries from memory",
                "resolution": "",
            },
        )
        return cls(g, source=str(p))

    def select(self, query: str, token: Optional[CancellationToken] = None) -> List[Dict[str, str]]:
        if token is not None:
            token.raise_if_expired()
        try:
            with self._lock:
                result = list(self.graph.query(query))
        except Exception as exc:  # noqa: BLE001
            raise TransientQueryFailure(f"rdflib query failed: {exc}") from exc

        return [{k: str(v) for k, v in row.asdict().items() if v is not None} for row in result]

    def close(self) -> None:
        pass
