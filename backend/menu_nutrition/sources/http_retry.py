"""
HTTP GET/POST with retries and exponential backoff, plus the per-source rate limiter.
"""
import logging
import threading
import time
from typing import Callable, Optional, Tuple

import requests

from menu_nutrition.config import RATE_LIMIT_BACKOFF_BASE, RATE_LIMIT_BACKOFF_MAX
from menu_nutrition.errors import AuthError, NoMatch, RateLimited, SourceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_BACKOFF = 1.0


class RateLimiter:
    """
    Minimum interval between requests to one source, plus 429 backoff
    (base 1s, doubling per consecutive 429, capped at 60s).
    One instance per source, shared by every caller of that source.
    """

    def __init__(
        self,
        name: str,
        min_interval: float = 1.0,
        backoff_base: float = RATE_LIMIT_BACKOFF_BASE,
        backoff_max: float = RATE_LIMIT_BACKOFF_MAX,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.min_interval = min_interval
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request: Optional[float] = None
        self._blocked_until = 0.0
        self._strikes = 0
        self.wait_count = 0

    def wait(self) -> float:
        """Block until the next request is allowed. Returns seconds slept."""
        with self._lock:
            now = self._clock()
            ready_at = self._blocked_until
            if self._last_request is not None:
                ready_at = max(ready_at, self._last_request + self.min_interval)
            delay = max(0.0, ready_at - now)
            if delay > 0:
                logger.debug("RATE_LIMIT wait source=%s delay=%.2fs", self.name, delay)
                self._sleep(delay)
            self._last_request = self._clock()
            self.wait_count += 1
            return delay

    def record_rate_limited(self, retry_after: Optional[float] = None) -> float:
        """Register a 429; returns the backoff now in force."""
        with self._lock:
            delay = min(self.backoff_base * (2 ** self._strikes), self.backoff_max)
            if retry_after is not None:
                delay = min(max(delay, retry_after), self.backoff_max)
            self._strikes += 1
            self._blocked_until = self._clock() + delay
        logger.warning("RATE_LIMIT 429 source=%s backoff=%.1fs strikes=%s", self.name, delay, self._strikes)
        return delay

    def record_success(self) -> None:
        with self._lock:
            self._strikes = 0

    @property
    def current_backoff(self) -> float:
        with self._lock:
            return max(0.0, self._blocked_until - self._clock())


def _request_with_retries(
    method: str,
    url: str,
    params: Optional[dict] = None,
    json_body: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: int = 10,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    limiter: Optional[RateLimiter] = None,
) -> Tuple[Optional[requests.Response], Optional[str]]:
    params = params or {}
    last_error: Optional[str] = None
    for attempt in range(max_retries):
        if limiter is not None:
            limiter.wait()
        try:
            if method == "POST":
                resp = requests.post(url, params=params, json=json_body, headers=headers, timeout=timeout)
            else:
                resp = requests.get(url, params=params, headers=headers, timeout=timeout)
            if resp.status_code < 500:
                return (resp, None)
            last_error = f"HTTP {resp.status_code}"
        except requests.Timeout as e:
            last_error = f"Read timed out: {e}"
        except requests.RequestException as e:
            last_error = f"{type(e).__name__}: {e}"
        logger.warning(
            "EXTERNAL_API retry attempt=%s/%s url=%s error=%s",
            attempt + 1, max_retries, url[:60], last_error,
        )
        if attempt < max_retries - 1:
            delay = initial_backoff * (2 ** attempt)
            logger.info("EXTERNAL_API backoff %.1fs before retry", delay)
            time.sleep(delay)
    return (None, last_error)


def get_with_retries(
    url: str,
    params: Optional[dict] = None,
    timeout: int = 10,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    headers: Optional[dict] = None,
    limiter: Optional[RateLimiter] = None,
) -> Tuple[Optional[requests.Response], Optional[str]]:
    """
    GET with retries and exponential backoff on timeout/connection errors and 5xx.
    Returns (response, None) on success, (None, error_message) on failure.
    """
    return _request_with_retries(
        "GET", url, params=params, headers=headers, timeout=timeout,
        max_retries=max_retries, initial_backoff=initial_backoff, limiter=limiter,
    )


def post_with_retries(
    url: str,
    json_body: Optional[dict] = None,
    timeout: int = 15,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    headers: Optional[dict] = None,
    limiter: Optional[RateLimiter] = None,
) -> Tuple[Optional[requests.Response], Optional[str]]:
    """POST counterpart of get_with_retries (JSON body)."""
    return _request_with_retries(
        "POST", url, json_body=json_body, headers=headers, timeout=timeout,
        max_retries=max_retries, initial_backoff=initial_backoff, limiter=limiter,
    )


def _retry_after_seconds(resp: requests.Response) -> Optional[float]:
    raw = (resp.headers or {}).get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def check_response(
    resp: Optional[requests.Response],
    err: Optional[str],
    source: str,
    limiter: Optional[RateLimiter] = None,
) -> dict:
    """
    Map transport outcome to the error taxonomy and return the decoded JSON body.
    401/403 -> AuthError, 429 -> RateLimited (limiter backs off), 404 -> NoMatch,
    other failures -> SourceUnavailable.
    """
    if err is not None or resp is None:
        raise SourceUnavailable(err or "no response", source=source)
    status = resp.status_code
    if status in (401, 403):
        raise AuthError(f"HTTP {status}: credentials rejected", source=source)
    if status == 429:
        retry_after = _retry_after_seconds(resp)
        if limiter is not None:
            limiter.record_rate_limited(retry_after)
        raise RateLimited("HTTP 429", source=source, retry_after=retry_after)
    if status == 404:
        raise NoMatch("HTTP 404", source=source)
    try:
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise SourceUnavailable(f"{type(e).__name__}: {e}", source=source) from e
    if limiter is not None:
        limiter.record_success()
    return data
