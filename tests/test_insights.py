import logging
from datetime import datetime, timedelta

from database import create_db_engine, make_session_factory, session_scope
from insights import (
    ANOMALY_TITLE,
    HIGH_SPENDING_TITLE,
    Insight,
    InsightGenerator,
    high_spending_insights,
    make_unique_key,
)
from factories import series
from models import InsightPriority, InsightType
from services import InsightService

NOW = datetime(2025, 3, 15, 12, 0)


def _insight(
    title: str = "Spending Forecast",
    category_id: str = "food",
    period_id: str = "2025-03",
    created_at: datetime = NOW,
) -> Insight:
    return Insight(
        type=InsightType.forecast,
        title=title,
        description="Based on your pattern, you're likely to spend $60 on Food next month.",
        priority=InsightPriority.medium,
        actionable=True,
        related_category_id=category_id,
        related_period_id=period_id,
        created_at=created_at,
    )


def test_unique_key_format() -> None:
    assert (
        make_unique_key(InsightType.anomaly, ANOMALY_TITLE, "Food", "2025-03")
        == "anomaly_unusual_transaction_detected_food_2025-03"
    )
    assert (
        make_unique_key(InsightType.health_score, "Excellent Financial Health!", None, None)
        == "health_score_excellent_financial_health!__"
    )


def test_emit_deduplicates_within_and_across_sessions(session_factory) -> None:
    generator = InsightGenerator(session_factory)

    first = generator.emit([_insight(), _insight()])
    assert len(first) == 1
    assert generator.emit([_insight()]) == []

    other = InsightGenerator(session_factory)
    assert other.emit([_insight()]) == []
    assert [i.id for i in other.load_persisted()] == [first[0].id]


def test_dismissed_keys_stay_reserved(session_factory) -> None:
    generator = InsightGenerator(session_factory)
    emitted = generator.emit([_insight()])

    dismissed = generator.dismiss_all()

    assert [i.id for i in dismissed] == [emitted[0].id]
    assert generator.insights == []
    restarted = InsightGenerator(session_factory)
    assert restarted.load_persisted() == []
    assert restarted.emit([_insight()]) == []
    with session_scope(session_factory) as session:
        assert InsightService(session).count_for_key(emitted[0].unique_key) == 1


def test_mark_read_updates_session_and_store(session_factory) -> None:
    generator = InsightGenerator(session_factory)
    emitted = generator.emit([_insight()])

    assert generator.mark_read(emitted[0].id) is True
    assert generator.mark_read("missing") is False
    assert generator.insights[0].is_read
    with session_scope(session_factory) as session:
        assert InsightService(session).get(emitted[0].id).is_read


def test_session_list_is_newest_first_and_capped(session_factory) -> None:
    generator = InsightGenerator(session_factory, max_session_insights=3)
    candidates = [
        _insight(category_id=f"c{i}", created_at=NOW + timedelta(minutes=i))
        for i in range(5)
    ]

    generator.emit(candidates)

    assert [i.related_category_id for i in generator.insights] == ["c4", "c3", "c2"]


def test_clear_old_removes_only_stale_read_insights(session_factory) -> None:
    generator = InsightGenerator(session_factory, retention_days=30)
    old = generator.emit([_insight(category_id="old", created_at=NOW - timedelta(days=40))])
    generator.emit([_insight(category_id="unread", created_at=NOW - timedelta(days=40))])
    generator.emit([_insight(category_id="fresh")])
    generator.mark_read(old[0].id)

    assert generator.clear_old(NOW) == 1
    assert {i.related_category_id for i in generator.insights} == {"unread", "fresh"}


def test_store_failures_are_logged_not_raised(caplog) -> None:
    engine = create_db_engine("sqlite://")
    broken = make_session_factory(engine)
    generator = InsightGenerator(broken)

    with caplog.at_level(logging.ERROR, logger="insights"):
        emitted = generator.emit([_insight()])

    assert len(emitted) == 1
    assert generator.insights == emitted
    assert "insight_save_failed" in caplog.text
    engine.dispose()


def test_high_spending_alert_thresholds() -> None:
    names = {"food": "Food", "travel": "Travel"}
    txns = series([300, 300]) + series([600, 600], category_id="travel", prefix="v")

    alerts = high_spending_insights(txns, names, period_id=None, now=NOW)

    by_category = {a.related_category_id: a for a in alerts}
    assert by_category["food"].priority == InsightPriority.medium
    assert by_category["travel"].priority == InsightPriority.high
    assert by_category["travel"].title == HIGH_SPENDING_TITLE
    assert "$1,200.00" in by_category["travel"].description


def test_small_new_spend_raises_no_alert() -> None:
    assert high_spending_insights(series([250, 250]), {}, period_id=None, now=NOW) == []
