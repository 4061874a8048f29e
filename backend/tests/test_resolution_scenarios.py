"""
End-to-end resolution with the real local table and USDA matcher; HTTP is mocked.
Run from backend: python -m pytest tests/test_resolution_scenarios.py -v
"""
import pytest
from unittest.mock import patch, MagicMock

from menu_nutrition.cache.disk_cache import MemoryCache
from menu_nutrition.models.nutrition import SourceTier
from menu_nutrition.orchestrator import NutritionResolver
from menu_nutrition.sources.http_retry import RateLimiter
from menu_nutrition.sources.ingredient_db import IngredientDatabaseSource
from menu_nutrition.sources.usda_fdc import USDAFuzzyMatcher


def _nutrients(calories):
    return [
        {"nutrient": {"number": "208", "unitName": "kcal"}, "amount": calories},
        {"nutrient": {"number": "205", "unitName": "g"}, "amount": 30},
        {"nutrient": {"number": "203", "unitName": "g"}, "amount": 5},
        {"nutrient": {"number": "204", "unitName": "g"}, "amount": 14},
        {"nutrient": {"number": "291", "unitName": "g"}, "amount": 0.4},
        {"nutrient": {"number": "269", "unitName": "g"}, "amount": 21},
        {"nutrient": {"number": "307", "unitName": "mg"}, "amount": 60},
    ]


FOODS = [
    {"fdcId": 11, "description": "Desserts, tiramisu", "dataType": "SR Legacy"},
    {"fdcId": 12, "description": "Tiramisu, prepared from recipe", "dataType": "SR Legacy"},
    {"fdcId": 13, "description": "Cake, sponge", "dataType": "SR Legacy"},
]
CALORIES = {"11": 283, "12": 310, "13": 290}


class FakeTime:
    """Clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _fake_get(url, params=None, headers=None, timeout=None):
    if url.endswith("/foods/search"):
        return MagicMock(status_code=200, json=lambda: {"foods": FOODS})
    fdc_id = url.rsplit("/", 1)[1]
    return MagicMock(status_code=200, json=lambda: {"foodNutrients": _nutrients(CALORIES[fdc_id])})


@pytest.fixture
def engine():
    fake_time = FakeTime()
    limiter = RateLimiter("usda_fdc", min_interval=1.0, clock=fake_time, sleep=fake_time.sleep)
    usda = USDAFuzzyMatcher(api_key="test-key", limiter=limiter)
    batch_sleeps = []
    resolver = NutritionResolver(
        [IngredientDatabaseSource(), usda],
        cache=MemoryCache(),
        batch_delay=0.5,
        sleep=batch_sleeps.append,
    )
    return resolver, limiter, fake_time, batch_sleeps


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_tiramisu_resolves_through_usda(mock_get, engine):
    resolver, _, _, _ = engine
    mock_get.side_effect = _fake_get
    result = resolver.resolve("Tiramisu Tradizionale")
    assert result.is_available
    assert result.tier == SourceTier.USDA
    assert result.cleaned_term == "tiramisu"
    assert result.matched_name == "Desserts, tiramisu"
    assert result.match_count == 3
    assert result.confidence == 0.85
    assert result.is_general_estimate
    cal = result.range_for("calories")
    assert (cal.min, cal.max, cal.unit) == (283.0, 310.0, "kcal")
    assert result.range_for("sodium").unit == "mg"
    # 1 search + 3 details
    assert mock_get.call_count == 4


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_repeat_query_makes_no_network_calls(mock_get, engine):
    resolver, _, _, _ = engine
    mock_get.side_effect = _fake_get
    first = resolver.resolve("Tiramisu Tradizionale")
    calls = mock_get.call_count
    second = resolver.resolve("Tiramisu Tradizionale")
    assert second == first
    assert mock_get.call_count == calls


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_local_table_short_circuits_network(mock_get, engine):
    resolver, _, _, _ = engine
    result = resolver.resolve("Grilled Chicken Salad")
    assert result.tier == SourceTier.LOCAL_DB
    assert result.is_general_estimate
    for nutrient in ("calories", "carbs", "protein", "fat", "fiber", "sugar", "sodium"):
        r = result.range_for(nutrient)
        assert 0 <= r.min <= r.max
    mock_get.assert_not_called()


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_ocr_debris_makes_no_network_calls(mock_get, engine):
    resolver, _, _, _ = engine
    result = resolver.resolve("ing")
    assert not result.is_available
    assert result.tier == SourceTier.NONE
    mock_get.assert_not_called()


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_batch_with_cached_middle_item(mock_get, engine):
    """Item 2 is served from cache; items 1 and 3 hit USDA in order, every request paced by the limiter."""
    resolver, limiter, fake_time, batch_sleeps = engine
    mock_get.side_effect = _fake_get
    resolver.resolve("Cannoli")
    mock_get.reset_mock()
    mock_get.side_effect = _fake_get
    waits_before = limiter.wait_count

    results = resolver.resolve_batch(["Tiramisu Tradizionale", "Cannoli", "Tiramisu Classico"])

    assert [r.original_query for r in results] == ["Tiramisu Tradizionale", "Cannoli", "Tiramisu Classico"]
    searches = [
        c.kwargs["params"]["query"]
        for c in mock_get.call_args_list
        if c.args[0].endswith("/foods/search")
    ]
    assert searches == ["tiramisu", "tiramisu classico", "tiramisu"]
    assert limiter.wait_count - waits_before == mock_get.call_count
    # clock never advances on its own, so every request after the first waits the full interval
    assert all(s == pytest.approx(1.0) for s in fake_time.sleeps)
    assert batch_sleeps == [0.5]


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_punctuation_variants_are_resolved_separately(mock_get, engine):
    """'Chicken/Rice' is a choice of two items; 'Chicken Rice' is one dish. Neither is served the other's record."""
    resolver, _, _, _ = engine
    mock_get.side_effect = _fake_get
    resolver.resolve("Chicken/Rice")
    second = resolver.resolve("Chicken Rice")

    fresh = NutritionResolver([IngredientDatabaseSource()], cache=MemoryCache()).resolve("Chicken Rice")
    assert second.original_query == "Chicken Rice"
    assert second.cleaned_term == fresh.cleaned_term == "chicken rice"
    assert second.nutrition == fresh.nutrition
