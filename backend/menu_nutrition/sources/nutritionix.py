"""
Nutritionix natural-language lookup: the literal cleaned term, exactly one best food back.
POST https://trackapi.nutritionix.com/v2/natural/nutrients  (x-app-id / x-app-key headers)
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from menu_nutrition.errors import NoMatch, SourceUnavailable
from menu_nutrition.models.nutrition import (
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutrientRecord,
    SourceTier,
)
from menu_nutrition.sources.base import SourceAdapter
from menu_nutrition.sources.http_retry import RateLimiter, check_response, post_with_retries

logger = logging.getLogger(__name__)

NUTRITIONIX_URL = "https://trackapi.nutritionix.com/v2/natural/nutrients"

# Declared source category -> base confidence
SOURCE_CONFIDENCE: Dict[str, float] = {
    "restaurant": 0.9,
    "branded": 0.85,
    "common": 0.75,
    "unknown": 0.5,
}
COMPLETENESS_BONUS_MAX = 0.15


def classify_food_source(food: Dict[str, Any]) -> str:
    if food.get("brand_name") or food.get("nix_brand_name"):
        return "restaurant"
    if food.get("upc") or food.get("nix_item_id"):
        return "branded"
    if food.get("ndb_no"):
        return "common"
    return "unknown"


def completeness_bonus(food: Dict[str, Any]) -> float:
    """Calories/protein/carbs are always there; fiber, sugar, saturated fat each add a sixth."""
    present = 3
    for field_name in ("nf_dietary_fiber", "nf_sugars", "nf_saturated_fat"):
        if food.get(field_name) is not None:
            present += 1
    return present / 6.0 * COMPLETENESS_BONUS_MAX


def _num(food: Dict[str, Any], key: str) -> Optional[float]:
    v = food.get(key)
    if v is None:
        return None
    try:
        return max(0.0, float(v))
    except (TypeError, ValueError):
        return None


def food_to_nutrients(food: Dict[str, Any]) -> NutrientRecord:
    return NutrientRecord(
        calories=_num(food, "nf_calories"),
        carbs=_num(food, "nf_total_carbohydrate"),
        protein=_num(food, "nf_protein"),
        fat=_num(food, "nf_total_fat"),
        fiber=_num(food, "nf_dietary_fiber"),
        sugar=_num(food, "nf_sugars"),
        sodium=_num(food, "nf_sodium"),
    )


class NutritionixLookup(SourceAdapter):
    """Tier 3: confidence fixed by declared source category plus a completeness bonus."""

    name = "nutritionix"
    tier = SourceTier.EXACT_NAME
    max_aggregate = 1
    general_estimate = False

    def __init__(
        self,
        app_id: str,
        app_key: str,
        threshold: float = 0.5,
        limiter: Optional[RateLimiter] = None,
        timeout: int = 15,
    ):
        super().__init__(threshold=threshold)
        self.app_id = app_id
        self.app_key = app_key
        self.limiter = limiter
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.app_key)

    def resolve(self, term: str, keywords: KeywordSet, category: FoodCategory) -> List[CandidateMatch]:
        if not self.enabled:
            raise SourceUnavailable("Nutritionix credentials not configured", source=self.name)
        headers = {
            "x-app-id": self.app_id,
            "x-app-key": self.app_key,
            "Content-Type": "application/json",
        }
        resp, err = post_with_retries(
            NUTRITIONIX_URL,
            json_body={"query": term[:200]},
            headers=headers,
            timeout=self.timeout,
            limiter=self.limiter,
        )
        data = check_response(resp, err, self.name, self.limiter)
        foods = data.get("foods") or []
        if not foods:
            logger.info("NUTRITIONIX no results term=%s", term[:60])
            raise NoMatch(f"no Nutritionix food for '{term}'", source=self.name)

        food = foods[0]
        nutrients = food_to_nutrients(food)
        if nutrients.calories is None:
            raise NoMatch(f"Nutritionix food without calories for '{term}'", source=self.name)
        source_kind = classify_food_source(food)
        score = min(SOURCE_CONFIDENCE[source_kind] + completeness_bonus(food), self.confidence_cap)
        name = (food.get("food_name") or term).strip()
        brand = (food.get("brand_name") or "").strip()
        logger.info(
            "NUTRITIONIX match term=%s food=%s source=%s score=%.3f serving=%s %s",
            term[:60], name[:60], source_kind, score,
            food.get("serving_qty"), food.get("serving_unit"),
        )
        return [CandidateMatch(
            name=f"{brand} {name}".strip() if brand else name,
            source_id=str(food.get("nix_item_id") or food.get("ndb_no") or name),
            nutrients=nutrients,
            score=round(score, 4),
            data_type=source_kind,
        )]

    def confidence(self, candidates: Sequence[CandidateMatch]) -> float:
        if not candidates:
            return 0.0
        return round(min(candidates[0].score, self.confidence_cap), 4)
