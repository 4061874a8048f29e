"""
Keyword extraction and coarse food-category classification for a normalized term.
"""
import logging
from typing import List, Tuple

from menu_nutrition.models.nutrition import FoodCategory, KeywordSet

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "with", "and", "or", "the", "a", "an", "in", "on", "at", "to", "for", "of", "from",
})

COOKING_METHODS = frozenset({
    "grilled", "fried", "baked", "roasted", "steamed", "boiled", "raw", "cooked",
})

# Table order matters: first category with a matching identifier wins
CATEGORY_IDENTIFIERS: List[Tuple[FoodCategory, Tuple[str, ...]]] = [
    (FoodCategory.POULTRY, ("chicken", "turkey", "duck", "poultry")),
    (FoodCategory.MEAT, ("beef", "pork", "lamb", "meat")),
    (FoodCategory.SEAFOOD, ("fish", "shrimp", "salmon", "tuna", "seafood", "shellfish")),
    (FoodCategory.DAIRY, ("milk", "cheese", "yogurt", "butter", "cream")),
    (FoodCategory.VEGETABLES, ("vegetable", "lettuce", "tomato", "carrot", "broccoli")),
    (FoodCategory.FRUITS, ("fruit", "apple", "banana", "orange", "berry")),
    (FoodCategory.GRAINS, ("bread", "rice", "pasta", "wheat", "oats")),
    (FoodCategory.LEGUMES, ("beans", "lentils", "peas", "hummus", "chickpeas")),
    (FoodCategory.NUTS, ("nuts", "almonds", "peanuts", "walnuts")),
    (FoodCategory.SWEETS, ("cake", "cookie", "chocolate", "candy", "dessert", "tiramisu", "tart", "pie")),
    (FoodCategory.BEVERAGES, ("juice", "soda", "coffee", "tea", "water")),
]


def classify_category(term: str) -> FoodCategory:
    """First category whose identifier appears as a substring of the term, else UNKNOWN."""
    t = (term or "").lower()
    for category, identifiers in CATEGORY_IDENTIFIERS:
        if any(ident in t for ident in identifiers):
            return category
    return FoodCategory.UNKNOWN


def extract_keywords(term: str) -> KeywordSet:
    """
    Whitespace tokens minus stop words, ingredients first then cooking methods.
    Duplicates keep their first position.
    """
    ingredients: List[str] = []
    methods: List[str] = []
    for tok in (term or "").lower().split():
        if tok in STOP_WORDS:
            continue
        bucket = methods if tok in COOKING_METHODS else ingredients
        if tok not in bucket:
            bucket.append(tok)
    return KeywordSet(
        tokens=tuple(ingredients + methods),
        category=classify_category(term),
        methods=tuple(methods),
    )
