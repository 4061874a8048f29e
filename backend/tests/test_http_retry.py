"""
Tests for HTTP retries, response classification and the per-source rate limiter.
"""
import pytest
import requests
from unittest.mock import patch, MagicMock

from menu_nutrition.errors import AuthError, NoMatch, RateLimited, SourceUnavailable
from menu_nutrition.sources.http_retry import (
    RateLimiter,
    check_response,
    get_with_retries,
    post_with_retries,
)


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@patch("menu_nutrition.sources.http_retry.time.sleep")
@patch("menu_nutrition.sources.http_retry.requests.get")
def test_get_retries_on_timeout_then_succeeds(mock_get, mock_sleep):
    ok = MagicMock(status_code=200, json=lambda: {"ok": True})
    mock_get.side_effect = [requests.Timeout("slow"), ok]
    resp, err = get_with_retries("https://example.test/api", max_retries=2, initial_backoff=1.0)
    assert err is None
    assert resp is ok
    assert mock_get.call_count == 2
    mock_sleep.assert_called_once_with(1.0)


@patch("menu_nutrition.sources.http_retry.time.sleep")
@patch("menu_nutrition.sources.http_retry.requests.get")
def test_get_gives_up_on_persistent_5xx(mock_get, mock_sleep):
    mock_get.return_value = MagicMock(status_code=503)
    resp, err = get_with_retries("https://example.test/api", max_retries=3, initial_backoff=0.5)
    assert resp is None
    assert err == "HTTP 503"
    assert mock_get.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_4xx_is_returned_without_retry(mock_get):
    mock_get.return_value = MagicMock(status_code=429)
    resp, err = get_with_retries("https://example.test/api")
    assert err is None
    assert resp.status_code == 429
    assert mock_get.call_count == 1


@patch("menu_nutrition.sources.http_retry.requests.post")
def test_post_sends_json_body_and_headers(mock_post):
    mock_post.return_value = MagicMock(status_code=200)
    post_with_retries("https://example.test/api", json_body={"query": "apple"}, headers={"x-app-id": "id"})
    kwargs = mock_post.call_args.kwargs
    assert kwargs["json"] == {"query": "apple"}
    assert kwargs["headers"] == {"x-app-id": "id"}
    assert kwargs["timeout"] == 15


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_limiter_consulted_before_every_attempt(mock_get):
    mock_get.return_value = MagicMock(status_code=200)
    clock = FakeClock()
    limiter = RateLimiter("test", min_interval=1.0, clock=clock, sleep=clock.sleep)
    get_with_retries("https://example.test/a", limiter=limiter)
    get_with_retries("https://example.test/b", limiter=limiter)
    assert limiter.wait_count == 2
    assert clock.sleeps == [1.0]


def test_rate_limiter_enforces_min_interval():
    clock = FakeClock()
    limiter = RateLimiter("test", min_interval=1.0, clock=clock, sleep=clock.sleep)
    assert limiter.wait() == 0.0
    clock.now += 0.25
    assert limiter.wait() == pytest.approx(0.75)
    clock.now += 5.0
    assert limiter.wait() == 0.0


def test_rate_limiter_backoff_doubles_and_caps():
    clock = FakeClock()
    limiter = RateLimiter("test", min_interval=0.0, clock=clock, sleep=clock.sleep)
    delays = [limiter.record_rate_limited() for _ in range(8)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]
    limiter.record_success()
    assert limiter.record_rate_limited() == 1.0


def test_rate_limiter_waits_out_backoff():
    clock = FakeClock()
    limiter = RateLimiter("test", min_interval=0.0, clock=clock, sleep=clock.sleep)
    limiter.record_rate_limited(retry_after=5)
    assert limiter.current_backoff == pytest.approx(5.0)
    assert limiter.wait() == pytest.approx(5.0)
    assert limiter.current_backoff == 0.0


def test_check_response_maps_status_codes():
    with pytest.raises(SourceUnavailable):
        check_response(None, "Read timed out", "src")
    with pytest.raises(AuthError):
        check_response(MagicMock(status_code=401), None, "src")
    with pytest.raises(AuthError):
        check_response(MagicMock(status_code=403), None, "src")
    with pytest.raises(NoMatch):
        check_response(MagicMock(status_code=404), None, "src")


def test_check_response_429_records_backoff():
    clock = FakeClock()
    limiter = RateLimiter("src", clock=clock, sleep=clock.sleep)
    resp = MagicMock(status_code=429, headers={"Retry-After": "3"})
    with pytest.raises(RateLimited) as exc:
        check_response(resp, None, "src", limiter)
    assert exc.value.retry_after == 3.0
    assert exc.value.source == "src"
    assert limiter.current_backoff == pytest.approx(3.0)


def test_check_response_bad_json_is_unavailable():
    resp = MagicMock(status_code=200)
    resp.json.side_effect = ValueError("not json")
    with pytest.raises(SourceUnavailable):
        check_response(resp, None, "src")


def test_check_response_returns_body():
    resp = MagicMock(status_code=200, json=lambda: {"foods": []})
    assert check_response(resp, None, "src") == {"foods": []}
