"""
Nutrition sources, one per tier: offline ingredient table, USDA FoodData Central,
Nutritionix, Open Food Facts, and MealMap food identifiers.
"""
from .base import SourceAdapter
from .http_retry import RateLimiter, get_with_retries, post_with_retries
from .ingredient_db import IngredientDatabaseSource
from .usda_fdc import USDAFuzzyMatcher
from .nutritionix import NutritionixLookup
from .open_food_facts import OpenFoodFactsLookup
from .mealmap_ids import MealMapIdentifierLookup

__all__ = [
    "SourceAdapter",
    "RateLimiter",
    "get_with_retries",
    "post_with_retries",
    "IngredientDatabaseSource",
    "USDAFuzzyMatcher",
    "NutritionixLookup",
    "OpenFoodFactsLookup",
    "MealMapIdentifierLookup",
]
