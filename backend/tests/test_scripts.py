"""
Tests for the command-line scripts (health check and batch resolver).
"""
import json
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

_SCRIPTS = Path(__file__).resolve().parent.parent / "scripts"


@pytest.fixture
def scripts_on_path():
    sys.path.insert(0, str(_SCRIPTS))
    yield
    sys.path.remove(str(_SCRIPTS))


def test_check_usda_without_key(scripts_on_path):
    import check_external_apis
    ok, msg = check_external_apis.check_usda("")
    assert not ok
    assert "USDA_FDC_API_KEY" in msg


@patch("menu_nutrition.sources.http_retry.requests.get")
def test_check_usda_reports_failure(mock_get, scripts_on_path):
    import check_external_apis
    mock_get.return_value = MagicMock(status_code=403)
    ok, msg = check_external_apis.check_usda("bad-key")
    assert not ok
    assert "AuthError" in msg


def test_check_nutritionix_without_credentials(scripts_on_path):
    import check_external_apis
    ok, _ = check_external_apis.check_nutritionix("", "")
    assert not ok


def test_main_exit_code(scripts_on_path):
    import check_external_apis
    with patch.object(check_external_apis, "check_usda", return_value=(False, "x")), \
            patch.object(check_external_apis, "check_nutritionix", return_value=(False, "x")), \
            patch.object(check_external_apis, "check_open_food_facts", return_value=(True, "ok")), \
            patch.dict("os.environ", {"OPEN_FOOD_FACTS_ENABLED": "true", "MEALMAP_IDS_ENABLED": "false"}):
        assert check_external_apis.main() == 0
    with patch.object(check_external_apis, "check_usda", return_value=(False, "x")), \
            patch.object(check_external_apis, "check_nutritionix", return_value=(False, "x")), \
            patch.dict("os.environ", {"OPEN_FOOD_FACTS_ENABLED": "false", "MEALMAP_IDS_ENABLED": "false"}):
        assert check_external_apis.main() == 1


def test_resolve_menu_prints_json_lines(scripts_on_path, capsys, tmp_path):
    import resolve_menu
    from menu_nutrition.models.resolution import ResolutionResult
    menu = tmp_path / "menu.txt"
    menu.write_text("Pad Thai\n\nGreen Curry\n", encoding="utf-8")
    fake = MagicMock()
    fake.cache = None
    fake.resolve_batch.side_effect = lambda items, cancel_event=None, item_delay=None: [
        ResolutionResult.unavailable(q, timestamp=1.0) for q in items
    ]
    with patch("menu_nutrition.factory.build_resolver", return_value=fake):
        code = resolve_menu.main(["Fried Rice", "--file", str(menu), "--delay", "0"])
    assert code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert [l["original_query"] for l in lines] == ["Fried Rice", "Pad Thai", "Green Curry"]
    assert fake.resolve_batch.call_args.kwargs["item_delay"] == 0


def test_resolve_menu_without_items(scripts_on_path):
    import resolve_menu
    assert resolve_menu.main([]) == 1
