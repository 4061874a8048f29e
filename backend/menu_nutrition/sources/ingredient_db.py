"""
Offline ingredient table: keyword match against ~45 common ingredients with per-serving base nutrition.
Tier 1. No network and no rate limit; when it accepts, no networked source is consulted.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from menu_nutrition.models.nutrition import (
    NUTRIENT_UNITS,
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutrientRecord,
    NutritionRange,
    SourceTier,
)
from menu_nutrition.errors import NoMatch
from menu_nutrition.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngredientInfo:
    name: str
    category: str  # protein, vegetable, carbohydrate, grain, dairy, fruit, fat, sauce, spice
    keywords: Tuple[str, ...]
    # calories, carbs, protein, fat per typical menu serving; None for seasonings
    nutrition: Optional[Tuple[float, float, float, float]] = None


INGREDIENTS: List[IngredientInfo] = [
    # Proteins
    IngredientInfo("chicken", "protein", ("chicken", "poultry", "grilled chicken", "fried chicken"), (185, 0, 35, 4)),
    IngredientInfo("turkey", "protein", ("turkey",), (160, 0, 30, 4)),
    IngredientInfo("beef", "protein", ("beef", "steak", "ground beef", "burger", "patty"), (250, 0, 26, 15)),
    IngredientInfo("pork", "protein", ("pork", "bacon", "ham", "sausage", "pork chop"), (220, 0, 25, 12)),
    IngredientInfo("fish", "protein", ("fish", "salmon", "tuna", "cod", "tilapia", "mahi"), (150, 0, 30, 3)),
    IngredientInfo("shrimp", "protein", ("shrimp", "prawns", "scampi"), (120, 1, 23, 1.5)),
    IngredientInfo("eggs", "protein", ("egg", "eggs", "scrambled", "fried egg", "omelette"), (70, 0.5, 6, 5)),
    IngredientInfo("tofu", "protein", ("tofu", "soy", "tempeh"), (80, 2, 8, 4.5)),
    IngredientInfo("beans", "protein", ("beans", "black beans", "kidney beans", "chickpeas", "lentils"), (110, 20, 8, 0.5)),
    # Vegetables
    IngredientInfo("lettuce", "vegetable", ("lettuce", "greens", "salad", "mixed greens"), (10, 2, 1, 0)),
    IngredientInfo("tomato", "vegetable", ("tomato", "tomatoes", "cherry tomatoes"), (30, 7, 1.5, 0)),
    IngredientInfo("onion", "vegetable", ("onion", "onions", "red onion", "white onion"), (40, 9, 1, 0)),
    IngredientInfo("bell pepper", "vegetable", ("bell pepper", "peppers"), (25, 6, 1, 0)),
    IngredientInfo("mushrooms", "vegetable", ("mushroom", "mushrooms", "shiitake", "portobello"), (15, 3, 2, 0)),
    IngredientInfo("spinach", "vegetable", ("spinach", "baby spinach"), (7, 1, 1, 0)),
    IngredientInfo("broccoli", "vegetable", ("broccoli",), (25, 5, 3, 0)),
    IngredientInfo("carrots", "vegetable", ("carrot", "carrots"), (50, 12, 1, 0)),
    IngredientInfo("cucumber", "vegetable", ("cucumber", "cucumbers"), (15, 4, 1, 0)),
    IngredientInfo("avocado", "fat", ("avocado", "avocados", "guacamole"), (320, 17, 4, 29)),
    # Carbohydrates
    IngredientInfo("bread", "carbohydrate", ("bread", "bun", "roll", "baguette", "sourdough"), (80, 15, 3, 1)),
    IngredientInfo("pasta", "carbohydrate", ("pasta", "spaghetti", "penne", "linguine", "fettuccine"), (220, 44, 8, 1)),
    IngredientInfo("rice", "carbohydrate", ("rice", "brown rice", "white rice", "jasmine rice"), (205, 45, 4, 0.5)),
    IngredientInfo("potato", "carbohydrate", ("potato", "potatoes", "fries", "mashed potatoes"), (160, 37, 4, 0)),
    IngredientInfo("quinoa", "grain", ("quinoa",), (220, 39, 8, 4)),
    IngredientInfo("tortilla", "carbohydrate", ("tortilla", "wrap", "flour tortilla"), (150, 26, 4, 4)),
    # Dairy
    IngredientInfo("cheese", "dairy", ("cheese", "cheddar", "mozzarella", "parmesan", "swiss"), (110, 1, 7, 9)),
    IngredientInfo("milk", "dairy", ("milk", "cream", "half and half"), (150, 12, 8, 8)),
    IngredientInfo("yogurt", "dairy", ("yogurt", "greek yogurt"), (100, 6, 17, 0)),
    IngredientInfo("butter", "fat", ("butter", "garlic butter"), (100, 0, 0, 11)),
    # Fruits
    IngredientInfo("apple", "fruit", ("apple", "apples"), (95, 25, 0.5, 0)),
    IngredientInfo("banana", "fruit", ("banana", "bananas"), (105, 27, 1, 0)),
    IngredientInfo("berries", "fruit", ("berry", "berries", "strawberry", "blueberry", "raspberry"), (60, 15, 1, 0.5)),
    IngredientInfo("orange", "fruit", ("orange", "oranges", "citrus"), (65, 16, 1, 0)),
    # Fats
    IngredientInfo("olive oil", "fat", ("olive oil", "evoo", "extra virgin"), (120, 0, 0, 14)),
    IngredientInfo("vegetable oil", "fat", ("vegetable oil", "canola oil"), (120, 0, 0, 14)),
    IngredientInfo("nuts", "fat", ("nuts", "almonds", "walnuts", "pecans", "peanuts"), (160, 6, 6, 14)),
    # Sauces
    IngredientInfo("marinara", "sauce", ("marinara", "tomato sauce", "pasta sauce"), (20, 4, 1, 0)),
    IngredientInfo("mayo", "sauce", ("mayo", "mayonnaise", "aioli"), (90, 0, 0, 10)),
    IngredientInfo("mustard", "sauce", ("mustard", "dijon"), (5, 1, 0, 0)),
    IngredientInfo("ketchup", "sauce", ("ketchup", "catsup"), (15, 4, 0, 0)),
    IngredientInfo("ranch", "sauce", ("ranch", "ranch dressing"), (70, 1, 0, 7)),
    IngredientInfo("vinaigrette", "sauce", ("vinaigrette", "balsamic", "italian dressing"), (45, 2, 0, 4)),
    # Seasonings: recognized, no nutrition contribution
    IngredientInfo("salt", "spice", ("sea salt", "kosher salt")),
    IngredientInfo("pepper", "spice", ("black pepper",)),
    IngredientInfo("garlic", "spice", ("garlic", "garlic powder", "minced garlic")),
    IngredientInfo("herbs", "spice", ("herbs", "basil", "oregano", "thyme", "rosemary", "parsley")),
]

# (indicator words, multiplier); size words checked before item-type words
PORTION_MULTIPLIERS: List[Tuple[Tuple[str, ...], float]] = [
    (("large", "big", "jumbo"), 1.5),
    (("small", "mini", "lite"), 0.7),
    (("family", "share"), 2.5),
    (("appetizer", "side"), 0.6),
    (("entree", "main"), 1.2),
    (("dessert",), 0.8),
]

# Per-nutrient spread applied to the point estimate
RANGE_SPREAD: Dict[str, Tuple[float, float]] = {
    "calories": (0.8, 1.2),
    "carbs": (0.7, 1.3),
    "protein": (0.8, 1.2),
    "fat": (0.7, 1.3),
}

_CATEGORY_BONUS_WORDS: Dict[str, Tuple[str, ...]] = {
    "protein": ("protein", "meat"),
    "vegetable": ("fresh", "organic"),
    "carbohydrate": ("bread", "pasta"),
}


def portion_multiplier(text: str) -> float:
    t = (text or "").lower()
    for words, multiplier in PORTION_MULTIPLIERS:
        if any(w in t for w in words):
            return multiplier
    return 1.0


def keyword_confidence(keyword: str, text: str, category: str) -> float:
    """0.9 for a whole-word hit, 0.7 for a substring hit, then specificity and category bonuses."""
    confidence = 0.5
    if re.search(r"\b" + re.escape(keyword) + r"\b", text):
        confidence = 0.9
    elif keyword in text:
        confidence = 0.7
    if len(keyword) >= 6:
        confidence += 0.1
    if any(w in text for w in _CATEGORY_BONUS_WORDS.get(category, ())):
        confidence += 0.1
    return min(confidence, 1.0)


def find_ingredients(text: str) -> List[Tuple[IngredientInfo, float]]:
    """Every ingredient with a keyword in the text, best confidence first. One hit per ingredient."""
    t = (text or "").lower()
    matches: List[Tuple[IngredientInfo, float]] = []
    for info in INGREDIENTS:
        for keyword in info.keywords:
            if keyword in t:
                matches.append((info, keyword_confidence(keyword, t, info.category)))
                break
    matches.sort(key=lambda m: m[1], reverse=True)
    return matches


class IngredientDatabaseSource(SourceAdapter):
    """Tier 1: builds a whole-dish estimate from the ingredients named in the term."""

    name = "local_db"
    tier = SourceTier.LOCAL_DB
    max_aggregate = len(INGREDIENTS)

    def __init__(self, threshold: float = 0.5, ingredients: Optional[List[IngredientInfo]] = None):
        super().__init__(threshold=threshold)
        self._ingredients = {i.name: i for i in (ingredients or INGREDIENTS)}

    def resolve(self, term: str, keywords: KeywordSet, category: FoodCategory) -> List[CandidateMatch]:
        found = find_ingredients(term)
        candidates = []
        for info, conf in found:
            if info.name not in self._ingredients:
                continue
            nutrients = NutrientRecord()
            if info.nutrition is not None:
                cal, carbs, protein, fat = info.nutrition
                nutrients = NutrientRecord(calories=cal, carbs=carbs, protein=protein, fat=fat)
            candidates.append(CandidateMatch(
                name=info.name,
                source_id=f"local:{info.name}",
                nutrients=nutrients,
                score=conf,
                data_type=info.category,
            ))
        if not any(not c.nutrients.is_empty for c in candidates):
            raise NoMatch(f"no known ingredient in '{term}'", source=self.name)
        logger.info(
            "LOCAL_DB term=%s ingredients=%s",
            term[:60], [(c.name, c.score) for c in candidates],
        )
        return candidates

    def confidence(self, candidates: Sequence[CandidateMatch]) -> float:
        if not candidates:
            return 0.0
        mean = sum(c.score for c in candidates) / len(candidates)
        return round(min(mean, self.confidence_cap), 4)

    def accepts(self, confidence: float) -> bool:
        # Strictly above the threshold: a bare 0.5 base confidence is not a match
        return confidence > self.threshold

    def ranges(self, candidates: Sequence[CandidateMatch], term: str = "") -> Dict[str, NutritionRange]:
        multiplier = portion_multiplier(term)
        lows = dict.fromkeys(RANGE_SPREAD, 0.0)
        highs = dict.fromkeys(RANGE_SPREAD, 0.0)
        for c in candidates:
            if c.nutrients.is_empty:
                continue
            weight = c.score
            for nutrient, (lo, hi) in RANGE_SPREAD.items():
                value = getattr(c.nutrients, nutrient) or 0.0
                lows[nutrient] += value * lo * weight
                highs[nutrient] += value * hi * weight
        ranges = {
            n: NutritionRange(round(lows[n] * multiplier, 1), round(highs[n] * multiplier, 1), NUTRIENT_UNITS[n])
            for n in RANGE_SPREAD
        }
        ranges["fiber"] = self._estimate_fiber(candidates, multiplier)
        ranges["sodium"] = self._estimate_sodium(candidates, term, multiplier)
        ranges["sugar"] = self._estimate_sugar(candidates, multiplier)
        return ranges

    @staticmethod
    def _estimate_fiber(candidates: Sequence[CandidateMatch], multiplier: float) -> NutritionRange:
        count = sum(1 for c in candidates if c.data_type in ("vegetable", "fruit", "grain"))
        return NutritionRange.around(count * 2.0 * multiplier, 0.5, 1.5, "g")

    @staticmethod
    def _estimate_sodium(candidates: Sequence[CandidateMatch], term: str, multiplier: float) -> NutritionRange:
        t = (term or "").lower()
        base = 300.0
        if "fried" in t or "pizza" in t or "burger" in t:
            base = 800.0
        elif any("cheese" in c.name for c in candidates):
            base = 600.0
        elif any(c.data_type == "sauce" for c in candidates):
            base = 500.0
        return NutritionRange.around(base * multiplier, 0.7, 1.3, "mg")

    @staticmethod
    def _estimate_sugar(candidates: Sequence[CandidateMatch], multiplier: float) -> NutritionRange:
        sweet = sum(
            1 for c in candidates
            if c.data_type == "fruit" or "sugar" in c.name or "honey" in c.name
        )
        return NutritionRange.around((sweet * 8.0 + 5.0) * multiplier, 0.6, 1.4, "g")
