from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from anomalies import AnomalyResult
from database import session_scope
from forecasting import BudgetForecast
from health import FinancialHealthScore
from models import AnomalySeverity, InsightPriority, InsightType, SmartInsight
from schemas import CategoryIn, TransactionIn, format_currency
from services import InsightService

logger = logging.getLogger(__name__)

ANOMALY_TITLE = "Unusual Transaction Detected"
FORECAST_TITLE = "Spending Forecast"
HIGH_SPENDING_TITLE = "High Spending Alert"
POOR_HEALTH_TITLE = "Financial Health Needs Attention"
GOOD_HEALTH_TITLE = "Excellent Financial Health!"

POOR_HEALTH_THRESHOLD = 60.0
GOOD_HEALTH_THRESHOLD = 85.0
HIGH_SPENDING_THRESHOLD = 500.0
VERY_HIGH_SPENDING_THRESHOLD = 1000.0

_SEVERITY_PRIORITY = {
    AnomalySeverity.low: InsightPriority.low,
    AnomalySeverity.medium: InsightPriority.medium,
    AnomalySeverity.high: InsightPriority.high,
    AnomalySeverity.critical: InsightPriority.urgent,
}


def make_unique_key(
    insight_type: InsightType,
    title: str,
    category_id: Optional[str],
    period_id: Optional[str],
) -> str:
    parts = [InsightType(insight_type).value, title, category_id or "", period_id or ""]
    return "_".join(parts).replace(" ", "_").lower()


@dataclass(frozen=True)
class Insight:
    type: InsightType
    title: str
    description: str
    priority: InsightPriority
    actionable: bool
    related_category_id: Optional[str] = None
    related_period_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    is_read: bool = False
    is_dismissed: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def unique_key(self) -> str:
        return make_unique_key(
            self.type, self.title, self.related_category_id, self.related_period_id
        )

    @classmethod
    def from_row(cls, row: SmartInsight) -> "Insight":
        try:
            priority = InsightPriority(row.priority)
        except ValueError:
            priority = InsightPriority.medium
        return cls(
            id=row.id,
            type=InsightType(row.type),
            title=row.title,
            description=row.description,
            priority=priority,
            actionable=row.is_actionable,
            related_category_id=row.related_category_id,
            related_period_id=row.related_period_id,
            created_at=row.created_at,
            is_read=row.is_read,
            is_dismissed=row.is_dismissed,
        )


def priority_for_severity(severity: AnomalySeverity) -> InsightPriority:
    return _SEVERITY_PRIORITY[severity]


def health_insights(
    score: Optional[FinancialHealthScore],
    *,
    period_id: Optional[str],
    now: datetime,
) -> list[Insight]:
    if score is None:
        return []
    points = int(score.overall_score)
    if score.overall_score < POOR_HEALTH_THRESHOLD:
        return [
            Insight(
                type=InsightType.health_score,
                title=POOR_HEALTH_TITLE,
                description=(
                    f"Your financial health score is {points}/100. "
                    "Focus on budget adherence and consistency."
                ),
                priority=InsightPriority.high,
                actionable=True,
                related_period_id=period_id,
                created_at=now,
            )
        ]
    if score.overall_score > GOOD_HEALTH_THRESHOLD:
        return [
            Insight(
                type=InsightType.health_score,
                title=GOOD_HEALTH_TITLE,
                description=(
                    f"Your financial health score is {points}/100. "
                    "Keep up the great work!"
                ),
                priority=InsightPriority.low,
                actionable=False,
                related_period_id=period_id,
                created_at=now,
            )
        ]
    return []


def forecast_insights(
    forecasts: Mapping[str, BudgetForecast],
    category_names: Mapping[str, str],
    *,
    period_id: Optional[str],
    now: datetime,
) -> list[Insight]:
    insights: list[Insight] = []
    for category_id, forecast in forecasts.items():
        name = category_names.get(category_id, "Unknown Category")
        insights.append(
            Insight(
                type=InsightType.forecast,
                title=FORECAST_TITLE,
                description=(
                    f"Based on your pattern, you're likely to spend "
                    f"${int(forecast.forecast_amount)} on {name} next month."
                ),
                priority=InsightPriority.medium,
                actionable=True,
                related_category_id=category_id,
                related_period_id=period_id,
                created_at=now,
            )
        )
    return insights


def anomaly_insight(
    result: AnomalyResult,
    *,
    period_id: Optional[str],
    now: datetime,
    description: Optional[str] = None,
    priority: Optional[InsightPriority] = None,
) -> Insight:
    return Insight(
        type=InsightType.anomaly,
        title=ANOMALY_TITLE,
        description=description or result.reason,
        priority=priority or priority_for_severity(result.severity),
        actionable=True,
        related_category_id=result.transaction.category_id,
        related_period_id=period_id,
        created_at=now,
    )


def batch_anomaly_insights(
    results: Iterable[AnomalyResult],
    *,
    period_id: Optional[str],
    now: datetime,
) -> list[Insight]:
    return [
        anomaly_insight(r, period_id=period_id, now=now)
        for r in results
        if r.is_anomaly
    ]


def incremental_anomaly_insight(
    result: AnomalyResult,
    category_name: str,
    *,
    period_id: Optional[str],
    now: datetime,
) -> Insight:
    amount = format_currency(result.transaction.amount)
    priority = (
        InsightPriority.urgent
        if result.severity == AnomalySeverity.critical
        else InsightPriority.high
    )
    return anomaly_insight(
        result,
        period_id=period_id,
        now=now,
        description=(
            f"New {amount} transaction in {category_name} category is unusual "
            "based on your spending pattern."
        ),
        priority=priority,
    )


def high_spending_insights(
    new_transactions: Sequence[TransactionIn],
    category_names: Mapping[str, str],
    *,
    period_id: Optional[str],
    now: datetime,
) -> list[Insight]:
    totals: dict[Optional[str], float] = defaultdict(float)
    for txn in new_transactions:
        totals[txn.category_id] += txn.amount

    insights: list[Insight] = []
    for category_id, total in totals.items():
        if total <= HIGH_SPENDING_THRESHOLD:
            continue
        name = category_names.get(category_id or "", "Unknown")
        insights.append(
            Insight(
                type=InsightType.spending_pattern,
                title=HIGH_SPENDING_TITLE,
                description=(
                    f"You've spent {format_currency(total)} in {name} recently. "
                    "Consider reviewing your budget for this category."
                ),
                priority=(
                    InsightPriority.high
                    if total > VERY_HIGH_SPENDING_THRESHOLD
                    else InsightPriority.medium
                ),
                actionable=True,
                related_category_id=category_id,
                related_period_id=period_id,
                created_at=now,
            )
        )
    return insights


def category_name_map(categories: Iterable[CategoryIn]) -> dict[str, str]:
    return {c.id: c.name for c in categories}


class InsightGenerator:
    """Owns the session insight list and its persisted counterpart.

    A candidate is emitted only if its unique key is unknown both to this
    session and to the store; store errors are logged and the session list is
    updated regardless.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        max_session_insights: int = 30,
        retention_days: int = 30,
        user_id: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self._user_id = user_id
        self.max_session_insights = max_session_insights
        self.retention_days = retention_days
        self._insights: list[Insight] = []
        self._known_keys: set[str] = set()
        self._lock = threading.RLock()

    @property
    def insights(self) -> list[Insight]:
        with self._lock:
            return list(self._insights)

    def load_persisted(self) -> list[Insight]:
        try:
            with session_scope(self._session_factory) as session:
                rows = InsightService(session, self._user_id).list_active(
                    limit=self.max_session_insights
                )
                loaded = [Insight.from_row(row) for row in rows]
        except SQLAlchemyError:
            logger.exception("insight_load_failed")
            return []
        with self._lock:
            self._insights = loaded
            self._known_keys.update(i.unique_key for i in loaded)
        logger.info(f"insight_load: count={len(loaded)}")
        return loaded

    def _exists_in_store(self, unique_key: str) -> bool:
        try:
            with session_scope(self._session_factory) as session:
                return InsightService(session, self._user_id).exists(unique_key)
        except SQLAlchemyError:
            logger.exception(f"insight_lookup_failed: key={unique_key}")
            return False

    def _persist(self, insight: Insight) -> None:
        try:
            with session_scope(self._session_factory) as session:
                InsightService(session, self._user_id).create(insight)
        except SQLAlchemyError:
            logger.exception(f"insight_save_failed: key={insight.unique_key}")

    def emit(self, candidates: Iterable[Insight]) -> list[Insight]:
        emitted: list[Insight] = []
        with self._lock:
            for candidate in candidates:
                key = candidate.unique_key
                if key in self._known_keys:
                    continue
                self._known_keys.add(key)
                if self._exists_in_store(key):
                    logger.debug(f"insight_suppressed: key={key}")
                    continue
                self._persist(candidate)
                emitted.append(candidate)
            if emitted:
                newest_first = sorted(emitted, key=lambda i: i.created_at, reverse=True)
                self._insights = (newest_first + self._insights)[
                    : self.max_session_insights
                ]
        if emitted:
            logger.info(f"insight_emit: count={len(emitted)}")
        return emitted

    def has_session_insight(self, predicate: Callable[[Insight], bool]) -> bool:
        with self._lock:
            return any(predicate(i) for i in self._insights)

    def mark_read(self, insight_id: str) -> bool:
        with self._lock:
            for index, insight in enumerate(self._insights):
                if insight.id == insight_id:
                    self._insights[index] = replace(insight, is_read=True)
                    break
            else:
                return False
        try:
            with session_scope(self._session_factory) as session:
                InsightService(session, self._user_id).mark_read(insight_id)
        except SQLAlchemyError:
            logger.exception(f"insight_mark_read_failed: id={insight_id}")
        except ValueError:
            logger.warning(f"insight_mark_read_missing: id={insight_id}")
        return True

    def dismiss_all(self) -> list[Insight]:
        with self._lock:
            dismissed = self._insights
            self._insights = []
        if not dismissed:
            return []
        try:
            with session_scope(self._session_factory) as session:
                InsightService(session, self._user_id).mark_dismissed(
                    i.id for i in dismissed
                )
        except SQLAlchemyError:
            logger.exception(f"insight_dismiss_failed: count={len(dismissed)}")
        logger.info(f"insight_dismiss: count={len(dismissed)}")
        return dismissed

    def clear_old(self, now: datetime) -> int:
        cutoff = now - timedelta(days=self.retention_days)
        with self._lock:
            before = len(self._insights)
            self._insights = [
                i for i in self._insights if not (i.is_read and i.created_at < cutoff)
            ]
            return before - len(self._insights)
