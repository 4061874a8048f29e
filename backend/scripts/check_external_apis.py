#!/usr/bin/env python3
"""
Check if the networked nutrition sources (USDA FDC, Nutritionix, Open Food Facts, MealMap IDs) answer.
Run from backend: python scripts/check_external_apis.py
Exit 0 if at least one source works; 1 if all fail or none configured.
"""
import sys
from pathlib import Path
from typing import Tuple

# Add backend to path when run as script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Short timeout for health check
HEALTH_TIMEOUT = 8
PROBE_TERM = "banana"


def _probe(adapter) -> Tuple[bool, str]:
    from menu_nutrition.errors import ResolutionError
    from menu_nutrition.normalization.keywords import extract_keywords
    kw = extract_keywords(PROBE_TERM)
    try:
        candidates = adapter.resolve(PROBE_TERM, kw, kw.category)
    except ResolutionError as e:
        return False, f"{type(e).__name__}: {e}"
    return True, f"ok (candidates={len(candidates)}, confidence={adapter.confidence(candidates):.2f})"


def check_usda(api_key: str) -> Tuple[bool, str]:
    """Return (success, message)."""
    if not (api_key or "").strip():
        return False, "no API key (set USDA_FDC_API_KEY)"
    from menu_nutrition.sources.usda_fdc import USDAFuzzyMatcher
    return _probe(USDAFuzzyMatcher(api_key=api_key.strip(), timeout=HEALTH_TIMEOUT))


def check_nutritionix(app_id: str, app_key: str) -> Tuple[bool, str]:
    """Return (success, message)."""
    if not (app_id and app_key):
        return False, "no credentials (set NUTRITIONIX_APP_ID / NUTRITIONIX_APP_KEY)"
    from menu_nutrition.sources.nutritionix import NutritionixLookup
    return _probe(NutritionixLookup(app_id=app_id, app_key=app_key, timeout=HEALTH_TIMEOUT))


def check_open_food_facts() -> Tuple[bool, str]:
    """Return (success, message)."""
    from menu_nutrition.sources.open_food_facts import OpenFoodFactsLookup
    return _probe(OpenFoodFactsLookup(timeout=HEALTH_TIMEOUT))


def check_mealmap_ids(base_url: str) -> Tuple[bool, str]:
    """Return (success, message). Only checks that the identifier list downloads."""
    from menu_nutrition.errors import ResolutionError
    from menu_nutrition.sources.mealmap_ids import MealMapIdentifierLookup
    lookup = MealMapIdentifierLookup(base_url=base_url, timeout=HEALTH_TIMEOUT)
    try:
        entries = lookup.load_food_list()
    except ResolutionError as e:
        return False, f"{type(e).__name__}: {e}"
    stats = lookup.statistics()
    return bool(entries), f"ok (entries={stats['total_entries']}, restaurants={stats['restaurant_entries']})"


def main() -> int:
    from menu_nutrition.config import (
        get_mealmap_api_url,
        get_mealmap_ids_enabled,
        get_nutritionix_app_id,
        get_nutritionix_app_key,
        get_open_food_facts_enabled,
        get_usda_fdc_api_key,
    )
    print("Checking nutrition sources...")
    usda_ok, usda_msg = check_usda(get_usda_fdc_api_key())
    print(f"  USDA FDC:        {'OK' if usda_ok else 'FAIL'} - {usda_msg}")
    nix_ok, nix_msg = check_nutritionix(get_nutritionix_app_id(), get_nutritionix_app_key())
    print(f"  Nutritionix:     {'OK' if nix_ok else 'FAIL'} - {nix_msg}")
    off_ok = False
    off_msg = "disabled (OPEN_FOOD_FACTS_ENABLED=false)"
    if get_open_food_facts_enabled():
        off_ok, off_msg = check_open_food_facts()
    print(f"  Open Food Facts: {'OK' if off_ok else 'FAIL'} - {off_msg}")
    ids_ok = False
    ids_msg = "disabled (MEALMAP_IDS_ENABLED=false)"
    if get_mealmap_ids_enabled():
        ids_ok, ids_msg = check_mealmap_ids(get_mealmap_api_url())
    print(f"  MealMap IDs:     {'OK' if ids_ok else 'FAIL'} - {ids_msg}")
    if usda_ok or nix_ok or off_ok or ids_ok:
        print("At least one source is working.")
        return 0
    print("All configured sources failed or none configured.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
