"""
config.py

Purpose:
    Provide get_settings() and get_supabase_client() so every collaborator of
    the recommender is configured from environment variables (.env supported).
    Connection details are never hardcoded into the services themselves.

Usage:
    from src.skincare_recommender.config import get_settings, get_supabase_client
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, ClientOptions, create_client

from dotenv import load_dotenv      # Load environment variables from .env file

load_dotenv()  # loads .env

DEFAULT_SPARQL_ENDPOINT = "http://localhost:3030/skincare-db/sparql"
DEFAULT_ONTOLOGY_NS = "http://www.semanticweb.org/msilaptop/ontologies/2025/4/skincareOntology/"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    sparql_endpoint: str = DEFAULT_SPARQL_ENDPOINT
    ontology_namespace: str = DEFAULT_ONTOLOGY_NS
    ontology_ttl_path: Optional[str] = None   # local Turtle file instead of the endpoint

    # Timeouts (seconds)
    graph_timeout_seconds: float = 8.0
    repository_timeout_seconds: float = 8.0
    request_deadline_seconds: float = 20.0

    # Pipeline knobs
    safety_max_workers: int = 5
    candidate_pool_limit: int = 100
    max_recommendations: int = 12


def get_settings() -> Settings:
    """Read Settings from the environment."""
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        # anon/authenticated key is enough for read-only catalog queries
        supabase_key=os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        sparql_endpoint=os.getenv("SPARQL_ENDPOINT", DEFAULT_SPARQL_ENDPOINT),
        ontology_namespace=os.getenv("SKINCARE_ONTOLOGY_NS", DEFAULT_ONTOLOGY_NS),
        ontology_ttl_path=os.getenv("SKINCARE_ONTOLOGY_TTL") or None,
        graph_timeout_seconds=_env_float("GRAPH_TIMEOUT_SECONDS", 8.0),
        repository_timeout_seconds=_env_float("REPOSITORY_TIMEOUT_SECONDS", 8.0),
        request_deadline_seconds=_env_float("REQUEST_DEADLINE_SECONDS", 20.0),
        safety_max_workers=_env_int("SAFETY_MAX_WORKERS", 5),
        candidate_pool_limit=_env_int("CANDIDATE_POOL_LIMIT", 100),
        max_recommendations=_env_int("MAX_RECOMMENDATIONS", 12),
    )


def get_supabase_client(settings: Optional[Settings] = None) -> Client:
    """Create a Supabase client using env vars."""
    settings = settings or get_settings()
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
    options = ClientOptions(postgrest_client_timeout=settings.repository_timeout_seconds)
    return create_client(settings.supabase_url, settings.supabase_key, options=options)
