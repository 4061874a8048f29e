"""
USDA FoodData Central fuzzy matcher.
Free API key: https://fdc.nal.usda.gov/api-key-signup (DEMO_KEY works at a low rate)
Search: GET https://api.nal.usda.gov/fdc/v1/foods/search?api_key=KEY&query=...
Detail: GET https://api.nal.usda.gov/fdc/v1/food/{fdcId}?api_key=KEY
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from menu_nutrition.cache.disk_cache import NutritionCache
from menu_nutrition.errors import AuthError, NoMatch, RateLimited, SourceUnavailable
from menu_nutrition.models.nutrition import (
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutrientRecord,
    SourceTier,
)
from menu_nutrition.scoring.aggregation import mean_completeness
from menu_nutrition.scoring.candidate_scorer import CandidateScorer
from menu_nutrition.sources.base import SourceAdapter
from menu_nutrition.sources.http_retry import RateLimiter, check_response, get_with_retries

logger = logging.getLogger(__name__)

USDA_SEARCH_URL = "https://api.nal.usda.gov/fdc/v1/foods/search"
USDA_FOOD_URL = "https://api.nal.usda.gov/fdc/v1/food/{fdc_id}"
USDA_DATA_TYPES = "Foundation,SR Legacy"
SEARCH_PAGE_SIZE = 25
DETAIL_CANDIDATES = 3

# FDC nutrient numbers -> our nutrient names. 957/958 are Atwater energy, used when 208 is absent.
NUTRIENT_NUMBERS: Dict[str, str] = {
    "208": "calories",
    "957": "calories",
    "958": "calories",
    "205": "carbs",
    "269": "sugar",
    "203": "protein",
    "204": "fat",
    "291": "fiber",
    "307": "sodium",
}
_PRIMARY_NUMBER = {"calories": "208"}

# Name fallback for records without nutrient numbers
NUTRIENT_NAME_HINTS: Dict[str, str] = {
    "energy": "calories",
    "carbohydrate, by difference": "carbs",
    "sugars, total including nlea": "sugar",
    "total sugars": "sugar",
    "protein": "protein",
    "total lipid (fat)": "fat",
    "fiber, total dietary": "fiber",
    "sodium, na": "sodium",
}


def build_query_variants(term: str, keywords: KeywordSet) -> List[str]:
    """Original term, top-2 keywords, primary keyword, '<protein> cooked'. Deduplicated, order kept."""
    variants = [term.strip()]
    if len(keywords.tokens) >= 2:
        variants.append(" ".join(keywords.tokens[:2]))
    if keywords.primary:
        variants.append(keywords.primary)
    if keywords.protein:
        variants.append(f"{keywords.protein} cooked")
    out: List[str] = []
    for v in variants:
        if v and v not in out:
            out.append(v)
    return out


def parse_food_nutrients(food_nutrients: List[Dict[str, Any]]) -> NutrientRecord:
    """
    Accepts both shapes FDC returns:
    search hits {"nutrientNumber", "nutrientName", "unitName", "value"} and
    detail records {"nutrient": {"number", "name", "unitName"}, "amount"}.
    """
    values: Dict[str, float] = {}
    numbers_seen: Dict[str, str] = {}
    for fn in food_nutrients or []:
        nested = fn.get("nutrient") if isinstance(fn.get("nutrient"), dict) else {}
        number = str(fn.get("nutrientNumber") or nested.get("number") or "").strip()
        name = (fn.get("nutrientName") or nested.get("name") or "").strip().lower()
        unit = (fn.get("unitName") or nested.get("unitName") or "").strip().lower()
        amount = fn.get("value", fn.get("amount"))
        if amount is None:
            continue
        target = NUTRIENT_NUMBERS.get(number)
        if target is None and not number:
            target = NUTRIENT_NAME_HINTS.get(name)
        if target is None:
            continue
        if target == "calories" and unit and unit != "kcal":
            continue
        # 208 wins over Atwater variants when both are present
        if target in values and numbers_seen.get(target) == _PRIMARY_NUMBER.get(target):
            continue
        try:
            values[target] = max(0.0, float(amount))
        except (TypeError, ValueError):
            continue
        numbers_seen[target] = number
    return NutrientRecord(**values)


class USDAFuzzyMatcher(SourceAdapter):
    """Tier 2: multi-variant search, shared scoring, details for the top 3, min/max ranges."""

    name = "usda_fdc"
    tier = SourceTier.USDA
    confidence_cap = 0.85
    max_aggregate = DETAIL_CANDIDATES

    def __init__(
        self,
        api_key: str,
        threshold: float = 0.65,
        limiter: Optional[RateLimiter] = None,
        cache: Optional[NutritionCache] = None,
        scorer: Optional[CandidateScorer] = None,
        timeout: int = 10,
        cache_ttl: Optional[float] = None,
    ):
        super().__init__(threshold=threshold)
        self.api_key = api_key
        self.limiter = limiter
        self.cache = cache
        self.scorer = scorer or CandidateScorer()
        self.timeout = timeout
        self.cache_ttl = cache_ttl

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _get_json(self, url: str, params: dict) -> dict:
        params = dict(params, api_key=self.api_key)
        resp, err = get_with_retries(url, params=params, timeout=self.timeout, limiter=self.limiter)
        return check_response(resp, err, self.name, self.limiter)

    def search(self, query: str) -> List[Dict[str, Any]]:
        cache_key = f"usda_search_{query}"
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached.get("foods") or []
        data = self._get_json(USDA_SEARCH_URL, {
            "query": query[:200],
            "dataType": USDA_DATA_TYPES,
            "pageSize": SEARCH_PAGE_SIZE,
        })
        foods = [f for f in (data.get("foods") or []) if f.get("fdcId") and f.get("description")]
        if self.cache is not None:
            self.cache.set(cache_key, {"foods": foods}, ttl=self.cache_ttl)
        logger.info("USDA_FDC search query=%s results=%s", query[:60], len(foods))
        return foods

    def food_details(self, fdc_id: str) -> NutrientRecord:
        cache_key = f"usda_food_{fdc_id}"
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return NutrientRecord.from_dict(cached)
        data = self._get_json(USDA_FOOD_URL.format(fdc_id=fdc_id), {})
        record = parse_food_nutrients(data.get("foodNutrients") or [])
        if self.cache is not None and not record.is_empty:
            self.cache.set(cache_key, record.to_dict(), ttl=self.cache_ttl)
        return record

    def resolve(self, term: str, keywords: KeywordSet, category: FoodCategory) -> List[CandidateMatch]:
        best_foods: List[Dict[str, Any]] = []
        best_variant = ""
        errors: List[str] = []
        for variant in build_query_variants(term, keywords):
            try:
                foods = self.search(variant)
            except (AuthError, RateLimited):
                raise
            except NoMatch:
                continue
            except SourceUnavailable as e:
                errors.append(str(e))
                continue
            if len(foods) > len(best_foods):
                best_foods, best_variant = foods, variant
        if not best_foods:
            if errors:
                raise SourceUnavailable("; ".join(errors)[:200], source=self.name)
            raise NoMatch(f"no USDA results for '{term}'", source=self.name)

        by_id = {str(f["fdcId"]): f for f in best_foods}
        scored = [
            CandidateMatch(
                name=f["description"].strip(),
                source_id=str(f["fdcId"]),
                score=self.scorer.score(f["description"], keywords, category, f.get("dataType")),
                data_type=f.get("dataType"),
            )
            for f in best_foods
        ]
        ranked = self.scorer.rank(scored)[:DETAIL_CANDIDATES]

        detailed: List[CandidateMatch] = []
        for cand in ranked:
            try:
                nutrients = self.food_details(cand.source_id)
            except (AuthError, RateLimited):
                raise
            except (NoMatch, SourceUnavailable) as e:
                logger.warning("USDA_FDC detail failed fdcId=%s error=%s", cand.source_id, e)
                nutrients = parse_food_nutrients(by_id[cand.source_id].get("foodNutrients") or [])
            if nutrients.is_empty:
                continue
            detailed.append(replace(cand, nutrients=nutrients))
        if not detailed:
            raise NoMatch(f"no USDA nutrient details for '{term}'", source=self.name)

        logger.info(
            "USDA_FDC match term=%s variant=%s best=%s score=%.3f candidates=%s",
            term[:60], best_variant, detailed[0].name[:60], detailed[0].score, len(detailed),
        )
        return detailed

    def confidence(self, candidates: Sequence[CandidateMatch]) -> float:
        if not candidates:
            return 0.0
        best = max(c.score for c in candidates)
        completeness = mean_completeness(c.nutrients for c in candidates)
        coverage = min(len(candidates) / 3.0, 1.0)
        conf = best * 0.5 + completeness * 0.3 + coverage * 0.2
        return round(min(conf, self.confidence_cap), 4)
