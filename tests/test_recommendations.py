from datetime import date, datetime

from factories import category, series, txn
from health import FinancialHealthScore
from recommendations import (
    RecommendationAction,
    RecommendationPriority,
    generate_recommendations,
)

TODAY = date(2025, 3, 15)
CATS = [category("food"), category("rent")]


def _score(
    overall: float = 85.0, consistency: float = 90.0, balance: float = 50.0
) -> FinancialHealthScore:
    return FinancialHealthScore(
        overall_score=overall,
        budget_adherence_score=80.0,
        consistency_score=consistency,
        savings_rate_score=75.0,
        category_balance_score=balance,
        trend_score=50.0,
        calculated_at=datetime(2025, 3, 15),
    )


def _titles(recommendations) -> list:
    return [r.title for r in recommendations]


def test_rising_category_spend_suggests_limit() -> None:
    recs = generate_recommendations(
        _score(), series([50, 50, 100, 100], start=date(2025, 3, 3)), CATS, today=TODAY
    )

    rising = next(r for r in recs if r.title == "Increasing Food Spending")
    assert rising.priority == RecommendationPriority.high
    assert rising.action_type == RecommendationAction.set_budget_limit
    assert "100%" in rising.description
    assert rising.related_category_id == "food"


def test_erratic_category_spend_suggests_plan() -> None:
    txns = series([5, 5, 5, 200], start=date(2025, 3, 3))

    recs = generate_recommendations(_score(), txns, CATS, today=TODAY)

    assert "Inconsistent Food Spending" in _titles(recs)


def test_unknown_categories_get_no_category_tips() -> None:
    txns = series([50, 50, 100, 100], category_id="ghost", start=date(2025, 3, 3))

    recs = generate_recommendations(_score(), txns, CATS, today=TODAY)

    assert not any("Ghost" in title for title in _titles(recs))


def test_weekend_and_large_purchase_behaviour() -> None:
    txns = [
        txn("sat", 300, date(2025, 3, 1)),
        txn("sun", 250, date(2025, 3, 2), "rent"),
        txn("mon", 100, date(2025, 3, 3), "rent"),
        txn("tue", 220, date(2025, 3, 4), "rent"),
    ]

    titles = _titles(generate_recommendations(_score(), txns, CATS, today=TODAY))

    assert "Weekend Overspending Pattern" in titles
    assert "Frequent Large Purchases" in titles


def test_holiday_season_alert_only_in_season() -> None:
    txns = series([600, 600, 600], start=date(2025, 12, 1))

    in_season = generate_recommendations(_score(), txns, CATS, today=date(2025, 12, 20))
    off_season = generate_recommendations(_score(), txns, CATS, today=date(2026, 3, 20))

    assert "Holiday Season Budget Alert" in _titles(in_season)
    assert "Holiday Season Budget Alert" not in _titles(off_season)


def test_front_loaded_month_suggests_spending_alert() -> None:
    txns = [txn("early", 150, date(2025, 3, 4)), txn("late", 100, date(2025, 3, 18))]

    recs = generate_recommendations(_score(), txns, CATS, today=TODAY)

    early = next(r for r in recs if r.title == "Early Month Overspending")
    assert early.priority == RecommendationPriority.low
    assert early.relevance_score == 0.6
    assert early.action_type == RecommendationAction.set_spending_alert


def test_slightly_front_loaded_month_is_quiet() -> None:
    txns = [txn("early", 139, date(2025, 3, 4)), txn("late", 100, date(2025, 3, 18))]

    recs = generate_recommendations(_score(), txns, CATS, today=TODAY)

    assert "Early Month Overspending" not in _titles(recs)


def test_weak_health_focuses_on_lowest_area() -> None:
    recs = generate_recommendations(
        _score(overall=55.0, consistency=30.0), series([10]), CATS, today=TODAY
    )

    assert recs[0].title == "Focus on Consistency"
    assert recs[0].relevance_score == 0.95
    assert "30/100" in recs[0].description


def test_high_total_spend_flags_velocity() -> None:
    recs = generate_recommendations(
        _score(), series([1600, 1600], start=date(2025, 3, 3)), CATS, today=TODAY
    )

    velocity = next(r for r in recs if r.title == "High Spending Velocity")
    assert "$106 per day" in velocity.description


def test_at_most_five_sorted_by_relevance() -> None:
    txns = [
        txn("a", 50, date(2025, 3, 1)),
        txn("b", 50, date(2025, 3, 2)),
        txn("c", 900, date(2025, 3, 3)),
        txn("d", 900, date(2025, 3, 4)),
        txn("e", 1500, date(2025, 3, 8)),
        txn("f", 5, date(2025, 3, 20)),
    ]

    recs = generate_recommendations(_score(overall=40.0), txns, CATS, today=TODAY)

    assert len(recs) == 5
    scores = [r.relevance_score for r in recs]
    assert scores == sorted(scores, reverse=True)
    assert recs[0].title.startswith("Focus on")


def test_nothing_to_say_about_no_data() -> None:
    assert generate_recommendations(_score(), [], CATS, today=TODAY) == []
