"""
Source credentials, tier thresholds, paths, and centralized configuration.
All values are read lazily from the environment; paths resolve relative to the backend directory.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# backend/menu_nutrition/config.py -> parent=menu_nutrition, parent.parent=backend, parent.parent.parent=repo
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_REPO_ROOT = _BACKEND_DIR.parent


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("CONFIG invalid float %s=%r, using %s", name, raw, default)
        return default


# --- Data paths ---
def get_cache_dir() -> Path:
    custom = os.environ.get("NUTRITION_CACHE_DIR", "").strip()
    if custom:
        return Path(custom)
    return _REPO_ROOT / "data" / "nutrition_cache"


# --- External APIs (lazy read from env) ---
def get_usda_fdc_api_key() -> str:
    # DEMO_KEY works without signup but is heavily rate limited
    return os.environ.get("USDA_FDC_API_KEY", "").strip() or "DEMO_KEY"

def get_nutritionix_app_id() -> str:
    return os.environ.get("NUTRITIONIX_APP_ID", "").strip()

def get_nutritionix_app_key() -> str:
    return os.environ.get("NUTRITIONIX_APP_KEY", "").strip()

def get_open_food_facts_enabled() -> bool:
    return _env_bool("OPEN_FOOD_FACTS_ENABLED", "true")

def get_mealmap_ids_enabled() -> bool:
    """
    Identifier tier. build_resolver() wires no restaurant nutrition provider, so R-code
    (restaurant) matches are skipped and only generic-food identifiers can resolve.
    """
    return _env_bool("MEALMAP_IDS_ENABLED", "false")

def get_mealmap_api_url() -> str:
    return os.environ.get("MEALMAP_API_URL", "https://meal-map-api-njio.onrender.com").rstrip("/")

def get_http_timeout() -> int:
    return int(_env_float("HTTP_TIMEOUT", 10))


# --- Cache TTLs (seconds) ---
def get_result_cache_ttl() -> float:
    return _env_float("NUTRITION_CACHE_TTL_HOURS", 24.0) * 3600

def get_usda_cache_ttl() -> float:
    return _env_float("USDA_CACHE_TTL_DAYS", 7.0) * 86400

MEALMAP_LIST_TTL_SECONDS = 24 * 3600


# --- Pacing ---
def get_rate_limit_interval() -> float:
    return _env_float("RATE_LIMIT_MIN_INTERVAL", 1.0)

def get_batch_item_delay() -> float:
    return _env_float("BATCH_ITEM_DELAY", 0.5)

RATE_LIMIT_BACKOFF_BASE = 1.0
RATE_LIMIT_BACKOFF_MAX = 60.0


# --- Tier acceptance thresholds ---
def get_local_db_threshold() -> float:
    return _env_float("LOCAL_DB_THRESHOLD", 0.5)

def get_usda_threshold() -> float:
    return _env_float("USDA_THRESHOLD", 0.65)

def get_exact_name_threshold() -> float:
    return _env_float("EXACT_NAME_THRESHOLD", 0.5)

def get_packaged_threshold() -> float:
    return _env_float("PACKAGED_THRESHOLD", 0.60)

def get_identifier_threshold() -> float:
    return _env_float("IDENTIFIER_THRESHOLD", 0.3)

# Engine-wide ceiling; fuzzy tiers carry their own lower caps
MAX_CONFIDENCE = 0.9


# --- Startup logging ---
def log_config() -> None:
    logger.info(
        "CONFIG: cache_dir=%s result_ttl=%.0fs usda_ttl=%.0fs usda_key=%s nutritionix=%s "
        "off_enabled=%s mealmap_ids=%s rate_interval=%.2fs batch_delay=%.2fs "
        "thresholds local=%.2f usda=%.2f exact=%.2f packaged=%.2f identifier=%.2f",
        get_cache_dir(), get_result_cache_ttl(), get_usda_cache_ttl(),
        "demo" if get_usda_fdc_api_key() == "DEMO_KEY" else "set",
        bool(get_nutritionix_app_id() and get_nutritionix_app_key()),
        get_open_food_facts_enabled(), get_mealmap_ids_enabled(),
        get_rate_limit_interval(), get_batch_item_delay(),
        get_local_db_threshold(), get_usda_threshold(), get_exact_name_threshold(),
        get_packaged_threshold(), get_identifier_threshold(),
    )
