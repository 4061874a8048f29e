"""
Tests for the shared relevance scorer and range aggregation.
"""
import pytest

from menu_nutrition.models.nutrition import (
    CandidateMatch,
    FoodCategory,
    KeywordSet,
    NutrientRecord,
    NutritionRange,
)
from menu_nutrition.normalization.keywords import extract_keywords
from menu_nutrition.scoring.aggregation import build_ranges, mean_completeness
from menu_nutrition.scoring.candidate_scorer import (
    CandidateScorer,
    category_relevance,
    data_quality,
    keyword_coverage,
    specificity,
)


def test_keyword_coverage_weights_leading_tokens():
    kw = KeywordSet(tokens=("chicken", "rice"))
    # chicken weight 1, rice weight 1/2
    assert keyword_coverage("Chicken, broilers", kw) == pytest.approx(1.0 / 1.5)
    assert keyword_coverage("Rice, white", kw) == pytest.approx(0.5 / 1.5)
    assert keyword_coverage("anything", KeywordSet()) == 0.0


def test_category_relevance():
    assert category_relevance("Chicken, roasted", FoodCategory.POULTRY) == 1.0
    assert category_relevance("Beef, ground", FoodCategory.POULTRY) == 0.0
    assert category_relevance("Beef, ground", FoodCategory.UNKNOWN) == 0.5


def test_specificity_bounds():
    assert specificity("Chicken") == 0.5
    assert specificity("Chicken, roasted") == pytest.approx(0.7)
    assert specificity("Generic food item product") == 0.0
    assert specificity("raw cooked roasted grilled baked") == 1.0


def test_data_quality():
    assert data_quality("Foundation") == 1.0
    assert data_quality("SR Legacy") == 1.0
    assert data_quality("Branded") == 0.5
    assert data_quality(None) == 0.5


def test_score_is_weighted_sum():
    scorer = CandidateScorer()
    kw = extract_keywords("tiramisu")
    score = scorer.score("Desserts, tiramisu", kw, data_type="SR Legacy")
    # 1.0*0.4 + 1.0*0.3 + 0.5*0.2 + 1.0*0.1
    assert score == pytest.approx(0.9)


def test_rank_breaks_ties_on_specificity_then_length():
    scorer = CandidateScorer()
    a = CandidateMatch(name="Chicken breast", source_id="1", score=0.7)
    b = CandidateMatch(name="Chicken breast, roasted", source_id="2", score=0.7)
    c = CandidateMatch(name="Chicken", source_id="3", score=0.7)
    d = CandidateMatch(name="Beef", source_id="4", score=0.9)
    ranked = scorer.rank([a, b, c, d])
    assert [r.source_id for r in ranked] == ["4", "2", "3", "1"]


def test_build_ranges_skips_missing_nutrients():
    records = [
        NutrientRecord(calories=200, protein=10),
        NutrientRecord(calories=250.04, protein=None, fat=5),
    ]
    ranges = build_ranges(records)
    assert ranges["calories"] == NutritionRange(200.0, 250.0, "kcal")
    assert ranges["protein"] == NutritionRange(10.0, 10.0, "g")
    assert ranges["fat"].min == ranges["fat"].max == 5.0
    assert "sodium" not in ranges


def test_mean_completeness():
    assert mean_completeness([]) == 0.0
    full = NutrientRecord(1, 1, 1, 1, 1, 1, 1)
    assert mean_completeness([full, NutrientRecord()]) == pytest.approx(0.5)


def test_nutrition_range_rejects_invalid():
    with pytest.raises(ValueError):
        NutritionRange(5, 1, "g")
    with pytest.raises(ValueError):
        NutritionRange(-1, 1, "g")
