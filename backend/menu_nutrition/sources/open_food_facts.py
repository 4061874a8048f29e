"""
Open Food Facts packaged-food lookup (no key required).
Search: https://world.openfoodfacts.org/api/v2/search?search_terms=...&fields=...
Values are per 100 g and get scaled to an estimated serving.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from menu_nutrition.errors import NoMatch
from menu_nutrition.models.nutrition import (
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutrientRecord,
    SourceTier,
)
from menu_nutrition.scoring.candidate_scorer import CandidateScorer
from menu_nutrition.sources.base import SourceAdapter
from menu_nutrition.sources.http_retry import RateLimiter, check_response, get_with_retries

logger = logging.getLogger(__name__)

OFF_SEARCH_URL = "https://world.openfoodfacts.org/api/v2/search"
OFF_FIELDS = "product_name,nutriments,code,id,serving_quantity"
OFF_PAGE_SIZE = 20
MIN_MATCH_SCORE = 0.3
DEFAULT_SERVING_GRAMS = 100.0

# Typical menu portion when the product does not declare a serving
CATEGORY_SERVING_GRAMS: Dict[FoodCategory, float] = {
    FoodCategory.POULTRY: 150.0,
    FoodCategory.MEAT: 150.0,
    FoodCategory.SEAFOOD: 150.0,
    FoodCategory.DAIRY: 100.0,
    FoodCategory.VEGETABLES: 100.0,
    FoodCategory.FRUITS: 120.0,
    FoodCategory.GRAINS: 100.0,
    FoodCategory.LEGUMES: 130.0,
    FoodCategory.NUTS: 30.0,
    FoodCategory.SWEETS: 80.0,
    FoodCategory.BEVERAGES: 250.0,
}

# nutriments key -> (our nutrient, factor to our unit)
NUTRIMENT_KEYS = {
    "energy-kcal_100g": ("calories", 1.0),
    "carbohydrates_100g": ("carbs", 1.0),
    "sugars_100g": ("sugar", 1.0),
    "proteins_100g": ("protein", 1.0),
    "fat_100g": ("fat", 1.0),
    "fiber_100g": ("fiber", 1.0),
    "sodium_100g": ("sodium", 1000.0),  # g -> mg
}


def parse_nutriments(nutriments: Dict[str, Any]) -> NutrientRecord:
    values: Dict[str, float] = {}
    for key, (target, factor) in NUTRIMENT_KEYS.items():
        raw = (nutriments or {}).get(key)
        if raw is None or raw == "":
            continue
        try:
            values[target] = max(0.0, float(raw) * factor)
        except (TypeError, ValueError):
            continue
    return NutrientRecord(**values)


def serving_grams(product: Dict[str, Any], category: FoodCategory) -> float:
    declared = product.get("serving_quantity")
    try:
        if declared is not None and float(declared) > 0:
            return float(declared)
    except (TypeError, ValueError):
        pass
    return CATEGORY_SERVING_GRAMS.get(category, DEFAULT_SERVING_GRAMS)


class OpenFoodFactsLookup(SourceAdapter):
    """Tier 4: strict threshold, best product only."""

    name = "open_food_facts"
    tier = SourceTier.PACKAGED
    confidence_cap = 0.75
    max_aggregate = 1
    general_estimate = False

    def __init__(
        self,
        threshold: float = 0.60,
        limiter: Optional[RateLimiter] = None,
        scorer: Optional[CandidateScorer] = None,
        timeout: int = 10,
        enabled: bool = True,
    ):
        super().__init__(threshold=threshold)
        self.limiter = limiter
        self.scorer = scorer or CandidateScorer()
        self.timeout = timeout
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def resolve(self, term: str, keywords: KeywordSet, category: FoodCategory) -> List[CandidateMatch]:
        params = {
            "search_terms": term[:200],
            "fields": OFF_FIELDS,
            "page_size": OFF_PAGE_SIZE,
        }
        resp, err = get_with_retries(OFF_SEARCH_URL, params=params, timeout=self.timeout, limiter=self.limiter)
        data = check_response(resp, err, self.name, self.limiter)
        products = data.get("products") or []

        candidates: List[CandidateMatch] = []
        for product in products:
            name = (product.get("product_name") or "").strip()
            per_100g = parse_nutriments(product.get("nutriments") or {})
            if not name or not per_100g.calories:
                continue
            score = self.scorer.score(name, keywords, category)
            if score < MIN_MATCH_SCORE:
                continue
            grams = serving_grams(product, category)
            candidates.append(CandidateMatch(
                name=name,
                source_id=str(product.get("code") or product.get("id") or name),
                nutrients=per_100g.scaled(grams / 100.0),
                score=score,
                data_type="packaged",
            ))
        if not candidates:
            logger.info("OPEN_FOOD_FACTS no usable products term=%s raw=%s", term[:60], len(products))
            raise NoMatch(f"no Open Food Facts product for '{term}'", source=self.name)

        ranked = self.scorer.rank(candidates)
        logger.info(
            "OPEN_FOOD_FACTS match term=%s product=%s score=%.3f candidates=%s",
            term[:60], ranked[0].name[:60], ranked[0].score, len(ranked),
        )
        return ranked

    def confidence(self, candidates: Sequence[CandidateMatch]) -> float:
        if not candidates:
            return 0.0
        best = candidates[0]
        conf = best.score * 0.7 + best.nutrients.completeness * 0.2 + 0.1
        return round(min(conf, self.confidence_cap), 4)
