from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class InsightType(str, Enum):
    budget_alert = "budget_alert"
    spending_pattern = "spending_pattern"
    anomaly = "anomaly"
    recommendation = "recommendation"
    forecast = "forecast"
    health_score = "health_score"


class InsightPriority(int, Enum):
    low = 1
    medium = 2
    high = 3
    urgent = 4


class AnomalySeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


INSIGHT_TYPE_ENUM = SAEnum(
    InsightType,
    name="insighttype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class SmartInsight(Base, TimestampMixin):
    __tablename__ = "smart_insights"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[InsightType] = mapped_column(INSIGHT_TYPE_ENUM, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=InsightPriority.medium.value
    )
    is_actionable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    related_category_id: Mapped[Optional[str]] = mapped_column(String(64))
    related_period_id: Mapped[Optional[str]] = mapped_column(String(64))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_dismissed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    unique_key: Mapped[str] = mapped_column(String(400), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "unique_key", name="uq_smart_insight_user_key"),
        Index(
            "ix_smart_insights_user_dismissed_created",
            "user_id",
            "is_dismissed",
            "created_at",
        ),
    )
