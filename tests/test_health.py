from datetime import date, datetime

import pytest

from factories import category, plan, series, txn
from health import (
    FinancialHealthScore,
    HealthScorer,
    adjust_incremental,
    budget_adherence_score,
    category_balance_score,
    consistency_score,
    gini_coefficient,
    income_savings_rate,
    trend_score,
)
from models import TransactionType

NOW = datetime(2025, 3, 15, 12, 0)


def _score(overall: float = 80.0, consistency: float = 90.0) -> FinancialHealthScore:
    return FinancialHealthScore(
        overall_score=overall,
        budget_adherence_score=100.0,
        consistency_score=consistency,
        savings_rate_score=75.0,
        category_balance_score=50.0,
        trend_score=50.0,
        calculated_at=NOW,
    )


def test_empty_inputs_fall_back_to_neutral_defaults() -> None:
    score = HealthScorer().compute([], [], [], now=NOW)

    assert score.budget_adherence_score == 100.0
    assert score.consistency_score == 100.0
    assert score.savings_rate_score == 75.0
    assert score.category_balance_score == 50.0
    assert score.trend_score == 50.0
    assert score.overall_score == pytest.approx(81.25)
    assert score.calculated_at == NOW


@pytest.mark.parametrize(
    "amounts",
    [[], [0.01], [1, 100000, 3], [500] * 20, [0, 0, 0, 0], [1, 2, 3, 4, 5, 6, 900]],
)
def test_overall_score_stays_in_range(amounts: list) -> None:
    txns = series(amounts)
    cats = [category("food")]
    plans = [plan("p1", "food", 1)]

    score = HealthScorer().compute(txns, plans, cats, now=NOW)

    assert 0.0 <= score.overall_score <= 100.0
    for value in score.sub_scores().values():
        assert 0.0 <= value <= 100.0


def test_equal_category_totals_are_balanced() -> None:
    txns = [txn("a", 100, date(2025, 3, 1)), txn("b", 100, date(2025, 3, 2), "rent")]

    assert gini_coefficient([100, 100]) == 0.0
    assert category_balance_score(txns) == pytest.approx(100.0)


def test_single_dominant_category_is_unbalanced() -> None:
    txns = [
        txn("a", 300, date(2025, 3, 1)),
        txn("b", 0, date(2025, 3, 2), "rent"),
        txn("c", 0, date(2025, 3, 3), "fun"),
    ]

    assert gini_coefficient([300, 0, 0]) == pytest.approx(1.0)
    assert category_balance_score(txns) == pytest.approx(0.0)


def test_single_category_balance_is_neutral() -> None:
    assert category_balance_score(series([10, 20])) == 50.0


def test_budget_adherence_blends_income_and_expense() -> None:
    cats = [category("food"), category("salary", type=TransactionType.income)]
    plans = [plan("p1", "food", 100), plan("p2", "salary", 200)]
    txns = [
        txn("a", 150, date(2025, 3, 1)),
        txn("b", 100, date(2025, 3, 2), "salary", TransactionType.income),
    ]

    assert budget_adherence_score(txns, plans, cats) == pytest.approx(50.0)


def test_plans_for_unknown_categories_are_skipped() -> None:
    plans = [plan("p1", "ghost", 100), plan("p2", None, 50)]

    assert budget_adherence_score(series([500]), plans, [category("food")]) == 100.0


def test_consistency_from_coefficient_of_variation() -> None:
    assert consistency_score(series([100])) == 100.0
    assert consistency_score(series([0, 0])) == 100.0
    assert consistency_score(series([50, 150])) == pytest.approx(50.0)


def test_trend_compares_recent_third_to_earliest_third() -> None:
    assert trend_score(series([10, 10])) == 50.0
    assert trend_score(series([10, 10, 10])) == pytest.approx(100.0)
    assert trend_score(series([10, 10, 10, 30, 30, 30])) == pytest.approx(100 / 3)
    assert trend_score(series([30, 30, 30, 10, 10, 10])) == pytest.approx(100 / 3)
    assert trend_score(series([0, 5, 5])) == 50.0


def test_incremental_adjustment_penalizes_large_bursts() -> None:
    burst = series([1500, 1500, 1500], prefix="n")

    adjusted = adjust_incremental(_score(), burst, now=NOW)

    assert adjusted.consistency_score == 85.0
    assert adjusted.overall_score == pytest.approx(82.5)


def test_incremental_adjustment_with_small_amounts() -> None:
    adjusted = adjust_incremental(_score(), series([20, 30, 40]), now=NOW)

    assert adjusted.consistency_score == 90.0
    assert adjusted.overall_score == pytest.approx(85.0)


def test_incremental_adjustment_needs_three_transactions() -> None:
    score = _score()
    assert adjust_incremental(score, series([5000, 5000])) is score


def test_income_savings_rate_strategy() -> None:
    txns = [
        txn("i", 1000, date(2025, 3, 1), "salary", TransactionType.income),
        txn("e", 900, date(2025, 3, 2)),
    ]

    assert income_savings_rate(txns, []) == pytest.approx(50.0)
    assert income_savings_rate(series([10]), []) == 50.0

    score = HealthScorer(savings_rate=income_savings_rate).compute(txns, [], [], now=NOW)
    assert score.savings_rate_score == pytest.approx(50.0)
