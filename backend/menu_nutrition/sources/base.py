"""
Common interface for nutrition sources. The resolver walks an ordered list of these.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from menu_nutrition.config import MAX_CONFIDENCE
from menu_nutrition.models.nutrition import (
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutritionRange,
    SourceTier,
)
from menu_nutrition.scoring.aggregation import build_ranges


class SourceAdapter(ABC):
    """
    One nutrition source (one tier).

    resolve() returns candidates or raises NoMatch / SourceUnavailable / AuthError / RateLimited.
    confidence(), accepts() and ranges() turn the candidates into the tier's verdict.
    """

    name: str = "source"
    tier: SourceTier = SourceTier.NONE
    confidence_cap: float = MAX_CONFIDENCE
    max_aggregate: int = 3
    # Ranges built from several same-category foods rather than one exact product
    general_estimate: bool = True

    def __init__(self, threshold: float = 0.0):
        self.threshold = threshold

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    def resolve(
        self,
        term: str,
        keywords: KeywordSet,
        category: FoodCategory,
    ) -> List[CandidateMatch]:
        ...

    def confidence(self, candidates: Sequence[CandidateMatch]) -> float:
        if not candidates:
            return 0.0
        best = max(c.score for c in candidates)
        return round(min(best, self.confidence_cap, MAX_CONFIDENCE), 4)

    def accepts(self, confidence: float) -> bool:
        return confidence > 0 and confidence >= self.threshold

    def ranges(self, candidates: Sequence[CandidateMatch], term: str = "") -> Dict[str, NutritionRange]:
        return build_ranges(c.nutrients for c in candidates[: self.max_aggregate])

    def is_general_estimate(self, candidates: Sequence[CandidateMatch]) -> bool:
        return self.general_estimate

    def __repr__(self) -> str:
        return f"<{type(self).__name__} tier={self.tier.value} threshold={self.threshold}>"
