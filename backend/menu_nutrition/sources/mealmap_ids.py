"""
MealMap food-identifier lookup.
GET {MEALMAP_API_URL}/restaurants returns a flat list of identifiers:
  "R0010"                                              restaurant nutrition entry (verified, highest trust)
  "chicken,_breast,_boneless,_skinless,_raw_2646170"   generic food; trailing digits are an FDC id
The list is refreshed every 24h and kept in the shared cache; a stale copy is used when refresh fails.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from menu_nutrition.cache.disk_cache import NutritionCache
from menu_nutrition.config import MEALMAP_LIST_TTL_SECONDS
from menu_nutrition.errors import AuthError, NoMatch, RateLimited, SourceUnavailable
from menu_nutrition.models.nutrition import (
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutrientRecord,
    SourceTier,
)
from menu_nutrition.sources.base import SourceAdapter
from menu_nutrition.sources.http_retry import RateLimiter, check_response, get_with_retries

logger = logging.getLogger(__name__)

FOOD_LIST_CACHE_KEY = "mealmap_food_list"
MIN_MATCH_SCORE = 0.3
EARLY_STOP_SCORE = 0.8

_R_CODE = re.compile(r"^R\d{4}$")
_TRAILING_ID = re.compile(r"_(\d+)$")

RESTAURANT_NAMES: Dict[str, str] = {
    "R0000": "7 Eleven", "R0001": "Applebees", "R0002": "Arbys", "R0003": "Auntie Annes",
    "R0004": "BJs Restaurant Brewhouse", "R0005": "Baskin Robbins", "R0006": "Bob Evans",
    "R0007": "Bojangles", "R0008": "Bonefish Grill", "R0009": "Boston Market",
    "R0010": "Burger King", "R0011": "California Pizza Kitchen", "R0012": "Captain Ds",
    "R0013": "Carls Jr", "R0014": "Carrabbas Italian Grill", "R0015": "Caseys General Store",
    "R0016": "Checkers Drive In Rallys", "R0017": "Chick fil A", "R0019": "Chilis",
    "R0020": "Chipotle", "R0021": "Chuck E Cheese", "R0022": "Churchs Chicken",
    "R0023": "Cicis Pizza", "R0024": "Culvers", "R0025": "Dairy Queen", "R0026": "Del Taco",
    "R0027": "Dennys", "R0028": "Dickeys Barbecue Pit", "R0029": "Dominos",
    "R0030": "Dunkin Donuts", "R0031": "Einstein Bros", "R0032": "El Pollo Loco",
    "R0033": "Famous Daves", "R0034": "Firehouse Subs", "R0035": "Five Guys",
    "R0036": "Friendlys", "R0037": "Frischs Big Boy", "R0038": "Golden Corral",
    "R0039": "Hardees", "R0040": "Hooters", "R0041": "IHOP", "R0042": "In N Out Burger",
    "R0043": "Jack in the Box", "R0044": "Jamba Juice", "R0045": "Jasons Deli",
    "R0046": "Jersey Mikes Subs", "R0047": "Joes Crab Shack", "R0048": "KFC",
    "R0049": "Krispy Kreme", "R0050": "Krystal", "R0051": "Little Caesars",
    "R0052": "Long John Silvers", "R0053": "LongHorn Steakhouse", "R0054": "Marcos Pizza",
    "R0055": "McAlisters Deli", "R0056": "McDonalds", "R0057": "Moes Southwest Grill",
    "R0058": "Noodles Company", "R0059": "OCharleys", "R0060": "Olive Garden",
    "R0061": "Outback Steakhouse", "R0062": "PF Changs", "R0063": "Panda Express",
    "R0064": "Panera Bread", "R0065": "Papa Johns", "R0066": "Papa Murphys",
    "R0067": "Perkins", "R0068": "Pizza Hut", "R0069": "Popeyes",
    "R0070": "Potbelly Sandwich Shop", "R0071": "Qdoba", "R0072": "Quiznos",
    "R0073": "Red Lobster", "R0074": "Red Robin", "R0075": "Romanos Macaroni Grill",
    "R0076": "Round Table Pizza", "R0077": "Ruby Tuesday", "R0078": "Sbarro",
    "R0079": "Sheetz", "R0080": "Sonic", "R0081": "Starbucks", "R0082": "Steak n Shake",
    "R0083": "Subway", "R0084": "TGI Fridays", "R0085": "Taco Bell",
    "R0086": "The Capital Grille", "R0087": "Tim Hortons", "R0088": "Wawa",
    "R0089": "Wendys", "R0090": "Whataburger", "R0091": "White Castle",
    "R0092": "Wingstop", "R0093": "Yard House", "R0094": "Zaxbys",
}

STOP_WORDS = frozenset({
    "with", "and", "or", "the", "a", "an", "in", "on", "at", "to", "for", "of", "from",
    "includes", "served", "raw", "cooked",
})
RESTAURANT_TOKENS = frozenset({"mcdonalds", "subway", "starbucks", "kfc", "pizza", "burger", "taco", "chicken", "dunkin"})
PROTEIN_TOKENS = frozenset({"chicken", "beef", "fish", "salmon", "turkey", "pork", "shrimp", "lamb"})
PREPARATION_TOKENS = frozenset({"grilled", "fried", "baked", "roasted", "steamed", "raw", "cooked"})

# (food id, query term) -> nutrients for a verified restaurant entry
RestaurantNutritionProvider = Callable[[str, str], Optional[NutrientRecord]]


def is_restaurant_code(entry: str) -> bool:
    return bool(_R_CODE.match(entry or ""))


def extract_food_id(entry: str) -> Optional[str]:
    if is_restaurant_code(entry):
        return entry
    m = _TRAILING_ID.search(entry or "")
    return m.group(1) if m else None


def clean_entry_name(name: str) -> str:
    t = (name or "").lower()
    t = _TRAILING_ID.sub("", t)
    t = re.sub(r"[_,]", " ", t)
    t = re.sub(r"[^a-z\s]", "", t)
    return re.sub(r"\s+", " ", t).strip()


def tokenize(cleaned: str) -> List[str]:
    return [t for t in cleaned.split() if t and t not in STOP_WORDS]


@dataclass(frozen=True)
class _Entry:
    original: str
    cleaned: str
    tokens: FrozenSet[str]
    ordered: Tuple[str, ...]


@dataclass(frozen=True)
class IdMatch:
    entry: str
    food_id: str
    score: float
    is_restaurant: bool
    strategy: str


def _exact(tokens: FrozenSet[str], ordered: Tuple[str, ...], e: _Entry) -> float:
    if tokens == e.tokens:
        return 1.0
    if tokens <= e.tokens:
        return 0.9
    return 0.0


def _substring(tokens: FrozenSet[str], ordered: Tuple[str, ...], e: _Entry) -> float:
    if " ".join(ordered) in " ".join(e.ordered):
        return 0.8
    for tok in tokens:
        if len(tok) >= 4 and any(tok in et or et in tok for et in e.tokens):
            return 0.6
    return 0.0


def _overlap(tokens: FrozenSet[str], ordered: Tuple[str, ...], e: _Entry) -> float:
    union = tokens | e.tokens
    if not union:
        return 0.0
    shared = tokens & e.tokens
    score = len(shared) / len(union)
    if shared & RESTAURANT_TOKENS:
        score += 0.3
    if shared & PROTEIN_TOKENS:
        score += 0.2
    if shared & PREPARATION_TOKENS:
        score += 0.1
    return min(score, 1.0)


def _fuzzy(tokens: FrozenSet[str], ordered: Tuple[str, ...], e: _Entry) -> float:
    return fuzz.ratio(" ".join(sorted(tokens)), " ".join(sorted(e.tokens))) / 100.0


STRATEGIES = [
    ("exact", _exact),
    ("substring", _substring),
    ("token_overlap", _overlap),
    ("fuzzy", _fuzzy),
]


class FoodIdMatcher:
    """Fuzzy name -> identifier matching. Restaurant entries are searched before generic foods."""

    def __init__(self, entries: Sequence[str]):
        self.restaurants: List[_Entry] = []
        self.generic: List[_Entry] = []
        for raw in entries:
            if is_restaurant_code(raw):
                name = RESTAURANT_NAMES.get(raw)
                if name:
                    self.restaurants.append(self._prepare(raw, name))
            elif not raw.startswith("R"):
                self.generic.append(self._prepare(raw, raw))

    @staticmethod
    def _prepare(original: str, name: str) -> _Entry:
        cleaned = clean_entry_name(name)
        ordered = tuple(tokenize(cleaned))
        return _Entry(original, cleaned, frozenset(ordered), ordered)

    def _best_in(self, entries: List[_Entry], tokens, ordered, limit: int) -> List[IdMatch]:
        scored: Dict[str, IdMatch] = {}
        best = 0.0
        for strategy_name, strategy in STRATEGIES:
            for e in entries:
                score = strategy(tokens, ordered, e)
                if score < MIN_MATCH_SCORE:
                    continue
                prev = scored.get(e.original)
                if prev is None or score > prev.score:
                    food_id = extract_food_id(e.original)
                    if food_id is None:
                        continue
                    scored[e.original] = IdMatch(e.original, food_id, round(score, 4), is_restaurant_code(e.original), strategy_name)
                    best = max(best, score)
            if best > EARLY_STOP_SCORE:
                break
        return sorted(scored.values(), key=lambda m: (-m.score, m.entry))[:limit]

    def find_top(self, term: str, limit: int = 5) -> List[IdMatch]:
        """Up to `limit` restaurant matches, followed by up to `limit` generic-food matches."""
        ordered = tuple(tokenize(clean_entry_name(term)))
        tokens = frozenset(ordered)
        if not tokens:
            return []
        restaurants = self._best_in(self.restaurants, tokens, ordered, limit)
        return restaurants + self._best_in(self.generic, tokens, ordered, limit)

    def find_best(self, term: str) -> Optional[IdMatch]:
        top = self.find_top(term, limit=1)
        return top[0] if top else None


def identifier_confidence(match: IdMatch) -> float:
    if match.is_restaurant:
        return min(match.score * 1.2, 0.9)
    return min(match.score * 0.8, 0.7)


class MealMapIdentifierLookup(SourceAdapter):
    """Tier 5: identifier match, then nutrients for the matched id."""

    name = "mealmap_ids"
    tier = SourceTier.IDENTIFIER
    max_aggregate = 1

    def __init__(
        self,
        base_url: str,
        food_details: Optional[Callable[[str], NutrientRecord]] = None,
        restaurant_nutrition: Optional[RestaurantNutritionProvider] = None,
        cache: Optional[NutritionCache] = None,
        limiter: Optional[RateLimiter] = None,
        threshold: float = 0.3,
        timeout: int = 10,
        list_ttl: float = MEALMAP_LIST_TTL_SECONDS,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(threshold=threshold)
        self.base_url = base_url.rstrip("/")
        self.food_details = food_details
        self.restaurant_nutrition = restaurant_nutrition
        self.cache = cache
        self.limiter = limiter
        self.timeout = timeout
        self.list_ttl = list_ttl
        self._enabled = enabled
        self._clock = clock
        self._entries: List[str] = []
        self._loaded_at: Optional[float] = None
        self._matcher: Optional[FoodIdMatcher] = None
        if enabled and restaurant_nutrition is None:
            logger.warning("MEALMAP_IDS no restaurant nutrition provider; R-code matches are skipped, generic foods only")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _fetch_food_list(self) -> List[str]:
        resp, err = get_with_retries(f"{self.base_url}/restaurants", timeout=self.timeout, limiter=self.limiter)
        data = check_response(resp, err, self.name, self.limiter)
        if not isinstance(data, list):
            raise SourceUnavailable("food list is not a JSON array", source=self.name)
        entries = [str(e) for e in data if isinstance(e, str) and e.strip()]
        logger.info(
            "MEALMAP_IDS food list fetched entries=%s restaurants=%s",
            len(entries), sum(1 for e in entries if is_restaurant_code(e)),
        )
        return entries

    def load_food_list(self) -> List[str]:
        """Fresh in-memory copy, else fresh cached copy, else network; stale cache when network fails."""
        now = self._clock()
        if self._loaded_at is not None and now - self._loaded_at <= self.list_ttl:
            return self._entries
        stale: Optional[List[str]] = None
        if self.cache is not None:
            entry = self.cache.get_entry(FOOD_LIST_CACHE_KEY)
            if entry is not None:
                cached = list(entry.payload.get("entries") or [])
                if not entry.is_expired(now):
                    self._set_entries(cached, entry.created_at)
                    return self._entries
                stale = cached
        try:
            fresh = self._fetch_food_list()
        except (SourceUnavailable, RateLimited, NoMatch) as e:
            if stale:
                logger.warning("MEALMAP_IDS refresh failed, using stale list entries=%s error=%s", len(stale), e)
                self._set_entries(stale, now)
                return self._entries
            raise
        if self.cache is not None:
            self.cache.set(FOOD_LIST_CACHE_KEY, {"entries": fresh}, ttl=self.list_ttl)
        self._set_entries(fresh, now)
        return self._entries

    def _set_entries(self, entries: List[str], loaded_at: float) -> None:
        self._entries = entries
        self._loaded_at = loaded_at
        self._matcher = FoodIdMatcher(entries)

    def clear(self) -> None:
        self._entries = []
        self._loaded_at = None
        self._matcher = None
        if self.cache is not None:
            self.cache.delete(FOOD_LIST_CACHE_KEY)

    def statistics(self) -> Dict[str, object]:
        restaurants = sum(1 for e in self._entries if is_restaurant_code(e))
        return {
            "total_entries": len(self._entries),
            "restaurant_entries": restaurants,
            "generic_entries": len(self._entries) - restaurants,
            "loaded_at": self._loaded_at,
        }

    def _nutrients_for(self, match: IdMatch, term: str) -> Optional[NutrientRecord]:
        if match.is_restaurant:
            if self.restaurant_nutrition is None:
                return None
            return self.restaurant_nutrition(match.food_id, term)
        if self.food_details is None:
            return None
        try:
            return self.food_details(match.food_id)
        except AuthError:
            raise
        except (NoMatch, SourceUnavailable, RateLimited) as e:
            logger.warning("MEALMAP_IDS detail failed id=%s error=%s", match.food_id, e)
            return None

    def is_general_estimate(self, candidates: Sequence[CandidateMatch]) -> bool:
        return not candidates or candidates[0].data_type != "restaurant_nutrition"

    def resolve(self, term: str, keywords: KeywordSet, category: FoodCategory) -> List[CandidateMatch]:
        self.load_food_list()
        matcher = self._matcher or FoodIdMatcher([])
        for match in matcher.find_top(term, limit=3):
            nutrients = self._nutrients_for(match, term)
            if nutrients is None or nutrients.is_empty:
                logger.info("MEALMAP_IDS no nutrients entry=%s id=%s", match.entry[:60], match.food_id)
                continue
            name = RESTAURANT_NAMES.get(match.entry, clean_entry_name(match.entry))
            logger.info(
                "MEALMAP_IDS match term=%s entry=%s id=%s score=%.3f strategy=%s",
                term[:60], match.entry[:60], match.food_id, match.score, match.strategy,
            )
            return [CandidateMatch(
                name=name,
                source_id=match.food_id,
                nutrients=nutrients,
                score=round(identifier_confidence(match), 4),
                data_type="restaurant_nutrition" if match.is_restaurant else "generic_food",
            )]
        raise NoMatch(f"no identifier match for '{term}'", source=self.name)
