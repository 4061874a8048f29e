"""
API tests with the resolver replaced by a mock.
Run from backend: python -m pytest tests/test_app.py -v
"""
import pytest
from unittest.mock import patch, MagicMock
from fastapi.testclient import TestClient

from menu_nutrition.models.nutrition import NutritionRange, SourceTier
from menu_nutrition.models.resolution import ResolutionResult


@pytest.fixture
def client():
    import app as app_module
    return TestClient(app_module.app)


def _available(query: str) -> ResolutionResult:
    return ResolutionResult(
        original_query=query,
        cleaned_term=query.lower(),
        matched_name="Chicken, broilers or fryers, breast, roasted",
        nutrition={"calories": NutritionRange(150.0, 200.0, "kcal")},
        confidence=0.8,
        tier=SourceTier.USDA,
        match_count=3,
        is_available=True,
        is_general_estimate=True,
        timestamp=1.0,
    )


def test_health_check(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "menu-nutrition"}


def test_resolve_returns_result_json(client):
    mock_resolver = MagicMock()
    mock_resolver.resolve.return_value = _available("Grilled Chicken")
    with patch("app.resolver", mock_resolver):
        resp = client.post("/nutrition/resolve", json={"query": "Grilled Chicken"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["tier"] == "usda"
    assert body["nutrition"]["calories"] == {"min": 150.0, "max": 200.0, "unit": "kcal"}
    assert body["is_available"] is True
    mock_resolver.resolve.assert_called_once_with("Grilled Chicken")


def test_resolve_unavailable_is_still_200(client):
    mock_resolver = MagicMock()
    mock_resolver.resolve.return_value = ResolutionResult.unavailable("ing", timestamp=1.0)
    with patch("app.resolver", mock_resolver):
        resp = client.post("/nutrition/resolve", json={"query": "ing"})
    assert resp.status_code == 200
    assert resp.json()["is_available"] is False
    assert resp.json()["tier"] == "none"


def test_resolve_rejects_blank_query(client):
    mock_resolver = MagicMock()
    with patch("app.resolver", mock_resolver):
        resp = client.post("/nutrition/resolve", json={"query": "   "})
    assert resp.status_code == 422
    mock_resolver.resolve.assert_not_called()


def test_batch_keeps_order(client):
    mock_resolver = MagicMock()
    mock_resolver.resolve_batch.side_effect = lambda queries: [_available(q) for q in queries]
    with patch("app.resolver", mock_resolver):
        resp = client.post("/nutrition/batch", json={"queries": ["Pad Thai", "Green Curry"]})
    assert resp.status_code == 200
    assert [r["original_query"] for r in resp.json()["results"]] == ["Pad Thai", "Green Curry"]


def test_batch_size_limit(client):
    import app as app_module
    with patch("app.resolver", MagicMock()):
        resp = client.post("/nutrition/batch", json={"queries": ["soup"] * (app_module.MAX_BATCH_ITEMS + 1)})
    assert resp.status_code == 422


def test_stats(client):
    mock_resolver = MagicMock()
    mock_resolver.statistics.return_value = {"tier_usage": {"usda": 2}, "disabled_sources": {}, "cache": {}}
    with patch("app.resolver", mock_resolver):
        resp = client.get("/nutrition/stats")
    assert resp.json()["tier_usage"] == {"usda": 2}
