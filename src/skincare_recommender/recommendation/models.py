"""
models.py

Purpose:
    Shared dataclasses for the recommendation engine.

    These are the "internal contracts" between:
      - the ontology service (SemanticIngredient, QueryResult),
      - the product repository / retriever (ProductCandidate),
      - scoring + safety analysis + explanations,
      - the fallback chain (Recommendation, RecommendationResult).

    Nothing in this module talks to Supabase or the knowledge graph.
    Every object here lives for a single request.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from src.skincare_recommender.recommendation.errors import InvalidProfile

T = TypeVar("T")


class SkinType(str, Enum):
    NORMAL = "normal"
    DRY = "dry"
    OILY = "oily"
    COMBINATION = "combination"
    SENSITIVE = "sensitive"


class SafetyFlag(str, Enum):
    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: Any) -> "SafetyFlag":
        """Map a nullable DB column (bool / 't' / 'false' / None) to a tri-state flag."""
        if value is None:
            return cls.UNKNOWN
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        text = str(value).strip().lower()
        if text in {"true", "t", "1", "yes", "y"}:
            return cls.TRUE
        if text in {"false", "f", "0", "no", "n"}:
            return cls.FALSE
        return cls.UNKNOWN


# Declared sensitivity -> product flag column
SENSITIVITY_FLAGS: Dict[str, str] = {
    "fragrance": "fragrance_free",
    "alcohol": "alcohol_free",
    "paraben": "paraben_free",
    "sulfate": "sulfate_free",
    "silicone": "silicone_free",
}


def _clean_set(values: Optional[Iterable[Any]]) -> frozenset:
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(str(v).strip().lower() for v in values if str(v).strip())


@dataclass(frozen=True)
class GuestProfile:
    skin_type: SkinType
    concerns: frozenset = frozenset()
    sensitivities: frozenset = frozenset()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuestProfile":
        raw_type = str(data.get("skin_type") or "").strip().lower()
        try:
            skin_type = SkinType(raw_type)
        except ValueError as exc:
            raise InvalidProfile(f"Unsupported skin_type: {raw_type!r}") from exc
        return cls(
            skin_type=skin_type,
            concerns=_clean_set(data.get("concerns")),
            sensitivities=_clean_set(data.get("sensitivities")),
        )

    def describe(self) -> str:
        """Compact profile string for log lines."""
        return (
            f"skin_type={self.skin_type.value} "
            f"concerns=[{','.join(sorted(self.concerns))}] "
            f"sensitivities=[{','.join(sorted(self.sensitivities))}]"
        )


@dataclass
class SemanticIngredient:
    name: str
    benefit: Optional[str] = None
    function: Optional[str] = None
    explanation: Optional[str] = None
    concern_relevance_score: float = 0.0
    ontology_confidence: str = "medium"   # low | medium | high | very_high
    treats_concern: bool = False

    @property
    def is_high_confidence(self) -> bool:
        return self.ontology_confidence in {"high", "very_high"}


@dataclass
class QueryResult(Generic[T]):
    """Outcome of an ontology query. error is set when the query failed."""

    data: List[T] = field(default_factory=list)
    count: int = 0
    error: Optional[str] = None

    @classmethod
    def of(cls, rows: List[T]) -> "QueryResult[T]":
        return cls(data=list(rows), count=len(rows))

    @classmethod
    def failed(cls, reason: str) -> "QueryResult[T]":
        return cls(data=[], count=0, error=reason)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SafetyAnalysis:
    conflicts_detected: int = 0
    synergies_found: int = 0
    overall_safety_status: str = "safe"   # safe | excellent | caution_needed | unknown
    ontology_analyzed: bool = False
    conflict_details: List[Dict[str, str]] = field(default_factory=list)
    synergy_details: List[Dict[str, str]] = field(default_factory=list)
    note: Optional[str] = None


@dataclass
class ProductCandidate:
    id: Any
    name: str
    brand: str = "Unknown Brand"
    category: Optional[str] = None
    ingredient_list: str = ""
    description: Optional[str] = None
    product_url: Optional[str] = None
    image_path: Optional[str] = None

    fragrance_free: SafetyFlag = SafetyFlag.UNKNOWN
    alcohol_free: SafetyFlag = SafetyFlag.UNKNOWN
    paraben_free: SafetyFlag = SafetyFlag.UNKNOWN
    sulfate_free: SafetyFlag = SafetyFlag.UNKNOWN
    silicone_free: SafetyFlag = SafetyFlag.UNKNOWN

    matched_semantic_ingredients: List[SemanticIngredient] = field(default_factory=list)
    semantic_score: float = 0.0
    mapping_score: float = 0.0
    safety_score: float = 0.0
    final_score: int = 0
    confidence_level: str = "low"
    safety_analysis: SafetyAnalysis = field(default_factory=SafetyAnalysis)

    def flag_for(self, sensitivity: str) -> Optional[SafetyFlag]:
        column = SENSITIVITY_FLAGS.get(sensitivity)
        if column is None:
            return None
        return getattr(self, column)


@dataclass
class Recommendation:
    product: ProductCandidate
    explanation: str
    tier: str

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self.product)
        for column in SENSITIVITY_FLAGS.values():
            out[column] = getattr(self.product, column).value
        out["explanation"] = self.explanation
        out["tier"] = self.tier
        return out


@dataclass
class RecommendationMetadata:
    algorithm_type: str
    confidence: str
    processing_time_ms: int = 0
    total_candidates: int = 0
    semantic_ingredients_found: int = 0
    fallback_reason: Optional[str] = None


@dataclass
class RecommendationResult:
    """Single output contract shared by every tier of the fallback chain."""

    recommendations: List[Recommendation]
    metadata: RecommendationMetadata
    explanation: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "metadata": asdict(self.metadata),
            "explanation": self.explanation,
        }
