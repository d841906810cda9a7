from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from insights import Insight
from models import InsightPriority, InsightType
from services import InsightService

NOW = datetime(2025, 3, 15, 12, 0)


def _insight(title: str, created_at: datetime = NOW) -> Insight:
    return Insight(
        type=InsightType.anomaly,
        title=title,
        description="Transaction amount is 2.7 standard deviations from your average",
        priority=InsightPriority.low,
        actionable=True,
        related_category_id="food",
        created_at=created_at,
    )


def test_create_skips_taken_keys() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = InsightService(session)
        row = service.create(_insight("Unusual"))
        assert row is not None
        assert row.unique_key == "anomaly_unusual_food_"
        assert service.create(_insight("Unusual")) is None
        assert service.exists("anomaly_unusual_food_")
        assert service.count_for_key("anomaly_unusual_food_") == 1


def test_list_active_excludes_dismissed_newest_first() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = InsightService(session)
        older = _insight("Older", NOW - timedelta(hours=1))
        newer = _insight("Newer", NOW)
        hidden = _insight("Hidden", NOW + timedelta(hours=1))
        for insight in (older, newer, hidden):
            service.create(insight)
        session.commit()

        assert service.mark_dismissed([hidden.id, "missing"]) == 1
        assert [r.title for r in service.list_active()] == ["Newer", "Older"]
        assert [r.title for r in service.list_active(limit=1)] == ["Newer"]


def test_get_scoped_to_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        insight = _insight("Mine")
        InsightService(session, user_id=1).create(insight)
        session.commit()

        assert InsightService(session, user_id=1).get(insight.id).title == "Mine"
        with pytest.raises(ValueError, match="Insight not found"):
            InsightService(session, user_id=2).get(insight.id)
        assert InsightService(session, user_id=2).mark_dismissed([insight.id]) == 0
