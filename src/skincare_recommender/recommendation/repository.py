"""
repository.py

Read-only product catalog queries on Supabase (PostgREST).

Tables used:
  products (id, name, brand_id, main_category, description, ingredient_list,
            alcohol_free, fragrance_free, paraben_free, sulfate_free,
            silicone_free, product_url, local_image_path, is_active)
  brands   (id, name)   -- embedded via the brand_id foreign key

Nullable safety flag columns become SafetyFlag.UNKNOWN. Any client error is
re-raised as RepositoryFailure so the fallback chain can escalate.

supabase-py has no per-call timeout, so each query is bounded by the
client-wide PostgREST timeout (REPOSITORY_TIMEOUT_SECONDS), not by the time
left on the request token. Only cancel() stops a catalog query; after the
request deadline the catalog tiers still run, each call bounded by that
timeout."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from supabase import Client

from src.skincare_recommender.logging_utils import get_logger
from src.skincare_recommender.recommendation.cancellation import CancellationToken
from src.skincare_recommender.recommendation.errors import RepositoryFailure, RequestCancelled
from src.skincare_recommender.recommendation.models import (
    SENSITIVITY_FLAGS,
    ProductCandidate,
    SafetyFlag,
)

logger = get_logger("repository")

PRODUCT_COLUMNS = (
    "id,name,main_category,description,ingredient_list,"
    "alcohol_free,fragrance_free,paraben_free,sulfate_free,silicone_free,"
    "product_url,local_image_path,brands(name)"
)


def _brand_name(row: Dict[str, Any]) -> str:
    brand = row.get("brands")
    if isinstance(brand, list):
        brand = brand[0] if brand else None
    if isinstance(brand, dict) and brand.get("name"):
        return str(brand["name"])
    return row.get("brand_name") or "Unknown Brand"


def row_to_candidate(row: Dict[str, Any]) -> ProductCandidate:
    flags = {column: SafetyFlag.from_value(row.get(column)) for column in SENSITIVITY_FLAGS.values()}
    return ProductCandidate(
        id=row["id"],
        name=row.get("name") or "",
        brand=_brand_name(row),
        category=row.get("main_category"),
        ingredient_list=row.get("ingredient_list") or "",
        description=row.get("description"),
        product_url=row.get("product_url"),
        image_path=row.get("local_image_path"),
        **flags,
    )


class ProductRepository:
    def __init__(self, client: Client, *, timeout: float = 8.0) -> None:
        self.client = client
        self.timeout = timeout

    def _execute(self, label: str, query, token: Optional[CancellationToken]) -> List[Dict[str, Any]]:
        if token is not None:
            token.raise_if_cancelled()
            budget = token.remaining(self.timeout)
            if budget < self.timeout:
                logger.warning(
                    "products query '%s' has %.1fs of request budget left; may overrun by up to %.1fs",
                    label,
                    budget,
                    self.timeout - budget,
                    extra={
                        "invoking_func": f"ProductRepository.{label}",
                        "invoking_purpose": "Read product catalog",
                        "next_step": "Run query bounded by the PostgREST client timeout",
                        "resolution": "Raise REQUEST_DEADLINE_SECONDS or lower REPOSITORY_TIMEOUT_SECONDS",
                    },
                )
        try:
            res = query.execute()
        except RequestCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "products query '%s' failed: %s",
                label,
                exc,
                extra={
                    "invoking_func": f"ProductRepository.{label}",
                    "invoking_purpose": "Read product catalog",
                    "next_step": "Raise RepositoryFailure to the fallback chain",
                    "resolution": "Check SUPABASE_URL / key and network reachability",
                },
            )
            raise RepositoryFailure(f"{label}: {exc}") from exc
        return res.data or []

    # ------------------------------------------------------------------
    # Public APIs
    # ------------------------------------------------------------------
    def list_active_products(
        self, limit: int = 100, token: Optional[CancellationToken] = None
    ) -> List[ProductCandidate]:
        """Active products with a non-empty ingredient list, ordered by id."""
        query = (
            self.client.table("products")
            .select(PRODUCT_COLUMNS)
            .eq("is_active", True)
            .not_.is_("ingredient_list", "null")
            .neq("ingredient_list", "")
            .order("id")
            .limit(int(limit))
        )
        rows = self._execute("list_active_products", query, token)
        return [row_to_candidate(r) for r in rows if (r.get("ingredient_list") or "").strip()]

    def list_any_products(
        self, limit: int = 10, token: Optional[CancellationToken] = None
    ) -> List[ProductCandidate]:
        """Emergency listing: any named product, ordered by id ascending."""
        query = (
            self.client.table("products")
            .select(PRODUCT_COLUMNS)
            .not_.is_("name", "null")
            .order("id")
            .limit(int(limit))
        )
        rows = self._execute("list_any_products", query, token)
        return [row_to_candidate(r) for r in rows]
