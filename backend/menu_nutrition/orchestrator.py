"""
Tiered nutrition resolution.

NOT_STARTED -> CACHE_CHECK -> TIER_1 .. TIER_K -> RESOLVED | UNAVAILABLE

A valid cache entry short-circuits. Otherwise tiers run strictly in list order; the first tier whose
confidence passes its own threshold wins and no later tier runs. When nothing passes, an explicit
unavailable result is produced and cached so junk input is not re-queried.
Callers always get a ResolutionResult; source errors never propagate.
"""
import logging
import threading
import time
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from menu_nutrition.cache.disk_cache import NutritionCache
from menu_nutrition.config import MAX_CONFIDENCE
from menu_nutrition.errors import (
    AuthError,
    InvalidInput,
    NoMatch,
    RateLimited,
    SourceUnavailable,
)
from menu_nutrition.models.nutrition import FoodCategory, KeywordSet, SourceTier
from menu_nutrition.models.resolution import ResolutionResult
from menu_nutrition.normalization.keywords import extract_keywords
from menu_nutrition.normalization.text_normalizer import normalize_menu_item
from menu_nutrition.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

RESULT_KEY_PREFIX = "result_"
RATE_LIMIT_ATTEMPTS = 2


class ResolutionState(str, Enum):
    NOT_STARTED = "not_started"
    CACHE_CHECK = "cache_check"
    TIER = "tier"
    RESOLVED = "resolved"
    UNAVAILABLE = "unavailable"


def result_cache_key(raw_query: str) -> str:
    return RESULT_KEY_PREFIX + " ".join((raw_query or "").lower().split())


class NutritionResolver:
    """
    Owns result caching and tier fallback. Adapters, cache and clock are injected so tests can use
    in-memory fakes; build_resolver() wires the production set.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        cache: Optional[NutritionCache] = None,
        result_ttl: Optional[float] = None,
        batch_delay: float = 0.5,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.adapters: List[SourceAdapter] = list(adapters)
        self.cache = cache
        self.result_ttl = result_ttl
        self.batch_delay = batch_delay
        self._clock = clock
        self._sleep = sleep
        self._disabled: Dict[str, str] = {}
        self._usage_lock = threading.Lock()
        self._usage: Dict[str, int] = {t.value: 0 for t in SourceTier}

    # --- observability ---

    def _record_usage(self, tier: SourceTier) -> None:
        with self._usage_lock:
            self._usage[tier.value] += 1

    def tier_usage(self) -> Dict[str, int]:
        with self._usage_lock:
            return dict(self._usage)

    def disabled_sources(self) -> Dict[str, str]:
        return dict(self._disabled)

    def statistics(self) -> Dict[str, object]:
        return {
            "tier_usage": self.tier_usage(),
            "disabled_sources": self.disabled_sources(),
            "cache": self.cache.statistics() if self.cache is not None else {},
        }

    # --- single query ---

    def resolve(self, raw_query: str) -> ResolutionResult:
        """Never raises. Unusable input or no accepted tier -> is_available=False."""
        result, _ = self._resolve_with_origin(raw_query)
        return result

    def _resolve_with_origin(self, raw_query: str) -> Tuple[ResolutionResult, bool]:
        query = raw_query if isinstance(raw_query, str) else ""
        try:
            return self._resolve(query)
        except Exception:
            logger.exception("RESOLVE unexpected failure query=%s", query[:80])
            return ResolutionResult.unavailable(query, timestamp=self._clock()), False

    def _resolve(self, query: str) -> Tuple[ResolutionResult, bool]:
        key = result_cache_key(query)
        cacheable = self.cache is not None and bool(query.strip())

        logger.debug("RESOLVE state=%s query=%s", ResolutionState.CACHE_CHECK.value, query[:80])
        if cacheable:
            cached = self.cache.get_result(key)
            if cached is not None and result_cache_key(cached.original_query) != key:
                logger.warning("CACHE foreign record key=%s stored_query=%s", key[:80], cached.original_query[:80])
                cached = None
            if cached is not None:
                if cached.original_query != query:
                    cached = replace(cached, original_query=query)
                self._record_usage(SourceTier.CACHE)
                logger.info("CACHE hit query=%s tier=%s available=%s", query[:80], cached.tier.value, cached.is_available)
                return cached, True

        try:
            terms = normalize_menu_item(query)
            if not terms:
                raise InvalidInput(f"nothing usable in '{query[:80]}'")
        except InvalidInput as e:
            logger.info("RESOLVE invalid input query=%s reason=%s", query[:80], e)
            return self._finish_unavailable(query, "", key, cacheable), False

        for adapter in self.adapters:
            if not adapter.enabled or adapter.name in self._disabled:
                continue
            for term in terms:
                logger.debug("RESOLVE state=%s tier=%s term=%s", ResolutionState.TIER.value, adapter.tier.value, term)
                keywords = extract_keywords(term)
                result = self._try_tier(adapter, query, term, keywords, keywords.category)
                if result is None:
                    if adapter.name in self._disabled:
                        break
                    continue
                self._record_usage(adapter.tier)
                if cacheable:
                    self.cache.set_result(key, result, ttl=self.result_ttl)
                logger.info(
                    "RESOLVE state=%s query=%s term=%s tier=%s match=%s confidence=%.3f",
                    ResolutionState.RESOLVED.value, query[:80], term, adapter.tier.value,
                    result.matched_name[:60], result.confidence,
                )
                return result, False

        return self._finish_unavailable(query, terms[0], key, cacheable), False

    def _finish_unavailable(self, query: str, term: str, key: str, cacheable: bool) -> ResolutionResult:
        result = ResolutionResult.unavailable(query, cleaned_term=term, timestamp=self._clock())
        self._record_usage(SourceTier.NONE)
        if cacheable:
            self.cache.set_result(key, result, ttl=self.result_ttl)
        logger.info("RESOLVE state=%s query=%s", ResolutionState.UNAVAILABLE.value, query[:80])
        return result

    def _try_tier(
        self,
        adapter: SourceAdapter,
        query: str,
        term: str,
        keywords: KeywordSet,
        category: FoodCategory,
    ) -> Optional[ResolutionResult]:
        candidates = []
        for attempt in range(RATE_LIMIT_ATTEMPTS):
            try:
                candidates = adapter.resolve(term, keywords, category)
                break
            except RateLimited as e:
                logger.warning(
                    "TIER_RATE_LIMITED source=%s term=%s attempt=%s/%s retry_after=%s",
                    adapter.name, term, attempt + 1, RATE_LIMIT_ATTEMPTS, e.retry_after,
                )
                if attempt == RATE_LIMIT_ATTEMPTS - 1:
                    return None
            except AuthError as e:
                self._disabled[adapter.name] = str(e)
                logger.error("TIER_AUTH_DISABLED source=%s error=%s", adapter.name, e)
                return None
            except NoMatch as e:
                logger.info("TIER_SKIP source=%s term=%s reason=no_match detail=%s", adapter.name, term, e)
                return None
            except SourceUnavailable as e:
                logger.warning("TIER_SKIP source=%s term=%s reason=unavailable detail=%s", adapter.name, term, e)
                return None
            except Exception:
                logger.exception("TIER_SKIP source=%s term=%s reason=unexpected_error", adapter.name, term)
                return None

        if not candidates:
            return None
        confidence = adapter.confidence(candidates)
        if not adapter.accepts(confidence):
            logger.info(
                "TIER_SKIP source=%s term=%s reason=below_threshold confidence=%.3f threshold=%.2f",
                adapter.name, term, confidence, adapter.threshold,
            )
            return None
        ranges = adapter.ranges(candidates, term)
        if not ranges:
            logger.info("TIER_SKIP source=%s term=%s reason=no_nutrients", adapter.name, term)
            return None
        used = candidates[: adapter.max_aggregate]
        return ResolutionResult(
            original_query=query,
            cleaned_term=term,
            matched_name=candidates[0].name,
            nutrition=ranges,
            confidence=round(max(0.0, min(confidence, adapter.confidence_cap, MAX_CONFIDENCE)), 4),
            tier=adapter.tier,
            match_count=len(used),
            is_available=True,
            is_general_estimate=adapter.is_general_estimate(candidates),
            timestamp=self._clock(),
        )

    # --- batch ---

    def resolve_batch(
        self,
        queries: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
        item_delay: Optional[float] = None,
    ) -> List[ResolutionResult]:
        """
        Sequential, in input order. Sleeps item_delay after every item that was not a cache
        hit. A set cancel_event stops the batch between items; the results
        produced so far are returned.
        """
        delay = self.batch_delay if item_delay is None else item_delay
        results: List[ResolutionResult] = []
        before = self.tier_usage()
        pending_delay = False
        for i, query in enumerate(queries):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("BATCH cancelled completed=%s total=%s", i, len(queries))
                break
            if pending_delay and delay > 0:
                self._sleep(delay)
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("BATCH cancelled completed=%s total=%s", i, len(queries))
                    break
            result, from_cache = self._resolve_with_origin(query)
            results.append(result)
            pending_delay = not from_cache

        after = self.tier_usage()
        summary = {k: after[k] - before.get(k, 0) for k in after if after[k] - before.get(k, 0)}
        logger.info(
            "BATCH summary items=%s resolved=%s available=%s tiers=%s",
            len(queries), len(results), sum(1 for r in results if r.is_available), summary,
        )
        return results
