from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from models import InsightType, SmartInsight

if TYPE_CHECKING:  # pragma: no cover
    from insights import Insight


def get_current_user_id() -> int:
    return 1


class InsightService:
    """Keyed insight store.

    Rows are only ever created or flagged; nothing is deleted, so a dismissed
    insight keeps its unique key reserved.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def exists(self, unique_key: str) -> bool:
        stmt = (
            select(SmartInsight.id)
            .where(
                SmartInsight.user_id == self.user_id,
                SmartInsight.unique_key == unique_key,
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def get(self, insight_id: str) -> SmartInsight:
        row = self.session.get(SmartInsight, insight_id)
        if not row or row.user_id != self.user_id:
            raise ValueError("Insight not found")
        return row

    def create(self, insight: "Insight") -> Optional[SmartInsight]:
        """Persist ``insight`` unless its unique key is already taken."""
        if self.exists(insight.unique_key):
            return None
        row = SmartInsight(
            id=insight.id,
            user_id=self.user_id,
            type=InsightType(insight.type),
            title=insight.title,
            description=insight.description,
            priority=int(insight.priority),
            is_actionable=insight.actionable,
            related_category_id=insight.related_category_id,
            related_period_id=insight.related_period_id,
            is_read=insight.is_read,
            is_dismissed=False,
            unique_key=insight.unique_key,
            created_at=insight.created_at,
            updated_at=insight.created_at,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def mark_read(self, insight_id: str) -> None:
        row = self.get(insight_id)
        row.is_read = True
        self.session.flush()

    def mark_dismissed(self, insight_ids: Iterable[str]) -> int:
        ids = list(insight_ids)
        if not ids:
            return 0
        result = self.session.execute(
            update(SmartInsight)
            .where(SmartInsight.user_id == self.user_id, SmartInsight.id.in_(ids))
            .values(is_dismissed=True, updated_at=datetime.utcnow())
        )
        self.session.flush()
        return int(result.rowcount or 0)

    def list_active(self, limit: int = 30) -> list[SmartInsight]:
        stmt = (
            select(SmartInsight)
            .where(
                SmartInsight.user_id == self.user_id,
                SmartInsight.is_dismissed.is_(False),
            )
            .order_by(SmartInsight.created_at.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def count_for_key(self, unique_key: str) -> int:
        stmt = select(func.count(SmartInsight.id)).where(
            SmartInsight.user_id == self.user_id,
            SmartInsight.unique_key == unique_key,
        )
        return int(self.session.execute(stmt).scalar_one())
