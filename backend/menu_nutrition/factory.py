"""
Process-wide wiring: one cache, one rate limiter per source, adapters in tier order.
"""
import logging
from pathlib import Path
from typing import Optional

from menu_nutrition.cache.disk_cache import DiskCache, NutritionCache
from menu_nutrition.config import (
    get_batch_item_delay,
    get_cache_dir,
    get_exact_name_threshold,
    get_http_timeout,
    get_identifier_threshold,
    get_local_db_threshold,
    get_mealmap_api_url,
    get_mealmap_ids_enabled,
    get_nutritionix_app_id,
    get_nutritionix_app_key,
    get_open_food_facts_enabled,
    get_packaged_threshold,
    get_rate_limit_interval,
    get_result_cache_ttl,
    get_usda_cache_ttl,
    get_usda_fdc_api_key,
    get_usda_threshold,
)
from menu_nutrition.orchestrator import NutritionResolver
from menu_nutrition.scoring.candidate_scorer import CandidateScorer
from menu_nutrition.sources.http_retry import RateLimiter
from menu_nutrition.sources.ingredient_db import IngredientDatabaseSource
from menu_nutrition.sources.mealmap_ids import MealMapIdentifierLookup
from menu_nutrition.sources.nutritionix import NutritionixLookup
from menu_nutrition.sources.open_food_facts import OpenFoodFactsLookup
from menu_nutrition.sources.usda_fdc import USDAFuzzyMatcher

logger = logging.getLogger(__name__)


def build_resolver(
    cache_dir: Optional[Path] = None,
    cache: Optional[NutritionCache] = None,
) -> NutritionResolver:
    """Construct once at startup and share; limiters must not be duplicated across callers."""
    if cache is None:
        cache = DiskCache(cache_dir or get_cache_dir(), default_ttl=get_result_cache_ttl())
    interval = get_rate_limit_interval()
    timeout = get_http_timeout()
    scorer = CandidateScorer()

    usda = USDAFuzzyMatcher(
        api_key=get_usda_fdc_api_key(),
        threshold=get_usda_threshold(),
        limiter=RateLimiter("usda_fdc", interval),
        cache=cache,
        scorer=scorer,
        timeout=timeout,
        cache_ttl=get_usda_cache_ttl(),
    )
    adapters = [
        IngredientDatabaseSource(threshold=get_local_db_threshold()),
        usda,
        NutritionixLookup(
            app_id=get_nutritionix_app_id(),
            app_key=get_nutritionix_app_key(),
            threshold=get_exact_name_threshold(),
            limiter=RateLimiter("nutritionix", interval),
        ),
        OpenFoodFactsLookup(
            threshold=get_packaged_threshold(),
            limiter=RateLimiter("open_food_facts", interval),
            scorer=scorer,
            timeout=timeout,
            enabled=get_open_food_facts_enabled(),
        ),
        MealMapIdentifierLookup(
            base_url=get_mealmap_api_url(),
            food_details=usda.food_details,
            cache=cache,
            limiter=RateLimiter("mealmap_ids", interval),
            threshold=get_identifier_threshold(),
            timeout=timeout,
            enabled=get_mealmap_ids_enabled(),
        ),
    ]
    logger.info(
        "RESOLVER built sources=%s",
        [(a.name, a.enabled, a.threshold) for a in adapters],
    )
    return NutritionResolver(adapters, cache=cache, batch_delay=get_batch_item_delay())
