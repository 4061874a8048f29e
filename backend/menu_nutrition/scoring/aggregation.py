"""
Fold candidate nutrient records into per-nutrient min/max ranges.
"""
from typing import Dict, Iterable

from menu_nutrition.models.nutrition import (
    NUTRIENT_NAMES,
    NUTRIENT_UNITS,
    NutrientRecord,
    NutritionRange,
)


def build_ranges(records: Iterable[NutrientRecord]) -> Dict[str, NutritionRange]:
    """
    Min/max per nutrient across records. Nutrients no record reports are left out;
    a nutrient reported by only some records ranges over those.
    """
    records = [r for r in records if r is not None]
    ranges: Dict[str, NutritionRange] = {}
    for name in NUTRIENT_NAMES:
        values = [getattr(r, name) for r in records if getattr(r, name) is not None]
        if values:
            ranges[name] = NutritionRange.from_values(values, NUTRIENT_UNITS[name])
    return ranges


def mean_completeness(records: Iterable[NutrientRecord]) -> float:
    records = list(records)
    if not records:
        return 0.0
    return sum(r.completeness for r in records) / len(records)
