"""
Shared multi-factor relevance score for candidates from multi-result sources.

score = coverage * 0.4 + category * 0.3 + specificity * 0.2 + quality * 0.1
- coverage: keyword tokens present in the description, weighted 1/(rank+1) so ingredient tokens dominate.
- category: 1.0 if the description mentions the expected category, 0.0 if not, 0.5 when category unknown.
- specificity: 0.5 base, +0.2 per cooking-method token, -0.3 per generic filler token, clamped to [0, 1].
- quality: 1.0 for curated data types (USDA Foundation / SR Legacy), 0.5 otherwise.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from menu_nutrition.models.nutrition import CandidateMatch, FoodCategory, KeywordSet

# Words the source databases use for each category (USDA food-group naming)
CATEGORY_RELEVANT_KEYWORDS: Dict[FoodCategory, Tuple[str, ...]] = {
    FoodCategory.POULTRY: ("poultry", "chicken", "turkey"),
    FoodCategory.MEAT: ("beef", "pork", "lamb", "meat"),
    FoodCategory.SEAFOOD: ("finfish", "shellfish", "fish", "seafood"),
    FoodCategory.DAIRY: ("dairy", "milk", "cheese"),
    FoodCategory.VEGETABLES: ("vegetable",),
    FoodCategory.FRUITS: ("fruit",),
    FoodCategory.GRAINS: ("cereal", "grain", "bread", "baked"),
    FoodCategory.LEGUMES: ("legume", "beans", "peas"),
    FoodCategory.NUTS: ("nut", "seed"),
    FoodCategory.SWEETS: ("sweets", "dessert", "candy", "cake"),
    FoodCategory.BEVERAGES: ("beverage", "drink"),
}

SPECIFIC_TOKENS = frozenset({"cooked", "raw", "roasted", "grilled", "baked", "fried", "steamed"})
GENERIC_TOKENS = frozenset({"food", "item", "product", "generic"})
CURATED_DATA_TYPES = frozenset({"foundation", "sr legacy"})

_TOKEN = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class ScoringWeights:
    coverage: float = 0.4
    category: float = 0.3
    specificity: float = 0.2
    quality: float = 0.1


def _tokens(text: str) -> List[str]:
    return _TOKEN.findall((text or "").lower())


def keyword_coverage(description: str, keywords: KeywordSet) -> float:
    if not keywords.tokens:
        return 0.0
    desc = (description or "").lower()
    total = 0.0
    hit = 0.0
    for i, tok in enumerate(keywords.tokens):
        w = 1.0 / (i + 1)
        total += w
        if tok in desc:
            hit += w
    return hit / total


def category_relevance(description: str, category: FoodCategory) -> float:
    if category == FoodCategory.UNKNOWN:
        return 0.5
    desc = (description or "").lower()
    relevant = CATEGORY_RELEVANT_KEYWORDS.get(category, ())
    return 1.0 if any(k in desc for k in relevant) else 0.0


def specificity(description: str) -> float:
    s = 0.5
    for tok in _tokens(description):
        if tok in SPECIFIC_TOKENS:
            s += 0.2
        elif tok in GENERIC_TOKENS:
            s -= 0.3
    return max(0.0, min(1.0, s))


def data_quality(data_type: Optional[str]) -> float:
    return 1.0 if (data_type or "").strip().lower() in CURATED_DATA_TYPES else 0.5


class CandidateScorer:
    """Weighted relevance scorer. One instance is shared by every multi-result source."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def score(
        self,
        description: str,
        keywords: KeywordSet,
        category: Optional[FoodCategory] = None,
        data_type: Optional[str] = None,
    ) -> float:
        cat = keywords.category if category is None else category
        w = self.weights
        total = (
            keyword_coverage(description, keywords) * w.coverage
            + category_relevance(description, cat) * w.category
            + specificity(description) * w.specificity
            + data_quality(data_type) * w.quality
        )
        return round(max(0.0, min(1.0, total)), 4)

    def rank(self, candidates: Sequence[CandidateMatch]) -> List[CandidateMatch]:
        """Score desc; ties -> higher specificity, then shorter name."""
        return sorted(
            candidates,
            key=lambda c: (-c.score, -specificity(c.name), len(c.name)),
        )
