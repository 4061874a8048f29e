"""
Terminal resolution output and its cache record. Single JSON shape for the API, cache and scripts.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from menu_nutrition.models.nutrition import NutritionRange, SourceTier


@dataclass(frozen=True)
class ResolutionResult:
    original_query: str
    cleaned_term: str = ""
    matched_name: str = ""
    nutrition: Dict[str, NutritionRange] = field(default_factory=dict)
    confidence: float = 0.0
    tier: SourceTier = SourceTier.NONE
    match_count: int = 0
    is_available: bool = False
    is_general_estimate: bool = False
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 0.9:
            raise ValueError(f"confidence out of bounds: {self.confidence}")

    @classmethod
    def unavailable(
        cls,
        original_query: str,
        cleaned_term: str = "",
        timestamp: Optional[float] = None,
    ) -> "ResolutionResult":
        return cls(
            original_query=original_query,
            cleaned_term=cleaned_term,
            timestamp=time.time() if timestamp is None else timestamp,
        )

    def range_for(self, nutrient: str) -> Optional[NutritionRange]:
        return self.nutrition.get(nutrient)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_query": self.original_query,
            "cleaned_term": self.cleaned_term,
            "matched_name": self.matched_name,
            "nutrition": {k: v.to_dict() for k, v in self.nutrition.items()},
            "confidence": self.confidence,
            "tier": self.tier.value,
            "match_count": self.match_count,
            "is_available": self.is_available,
            "is_general_estimate": self.is_general_estimate,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ResolutionResult":
        return cls(
            original_query=d["original_query"],
            cleaned_term=d.get("cleaned_term", ""),
            matched_name=d.get("matched_name", ""),
            nutrition={k: NutritionRange.from_dict(v) for k, v in (d.get("nutrition") or {}).items()},
            confidence=float(d.get("confidence", 0.0)),
            tier=SourceTier(d.get("tier", SourceTier.NONE.value)),
            match_count=int(d.get("match_count", 0)),
            is_available=bool(d.get("is_available", False)),
            is_general_estimate=bool(d.get("is_general_estimate", False)),
            timestamp=float(d.get("timestamp", 0.0)),
        )


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Dict[str, Any]
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at > self.ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "created_at": self.created_at,
            "ttl_seconds": self.ttl_seconds,
            "result": self.payload,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=str(d["key"]),
            payload=d["result"],
            created_at=float(d["created_at"]),
            ttl_seconds=float(d["ttl_seconds"]),
        )
