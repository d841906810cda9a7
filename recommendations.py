"""Heuristic improvement tips derived from raw transactions and a health score."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from health import FinancialHealthScore
from patterns import group_by_category
from schemas import CategoryIn, TransactionIn

MAX_RECOMMENDATIONS = 5
TREND_INCREASE_RATIO = 1.3
HIGH_VARIATION_CV = 0.8
WEEKEND_RATIO = 1.5
LARGE_TRANSACTION_AMOUNT = 200.0
LARGE_TRANSACTION_COUNT = 3
EARLY_MONTH_RATIO = 1.4
HOLIDAY_MONTHS = frozenset({11, 12, 1})
HOLIDAY_SPEND_THRESHOLD = 1500.0
VELOCITY_THRESHOLD = 3000.0
FOCUS_SCORE_THRESHOLD = 70.0


class RecommendationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class RecommendationAction(str, Enum):
    set_budget_limit = "set_budget_limit"
    create_budget_plan = "create_budget_plan"
    set_spending_alert = "set_spending_alert"
    create_goal = "create_goal"
    review_spending = "review_spending"


@dataclass(frozen=True)
class HealthRecommendation:
    icon: str
    title: str
    description: str
    priority: RecommendationPriority
    relevance_score: float
    action_type: RecommendationAction
    related_category_id: Optional[str] = None


def _average(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def category_recommendations(
    transactions: Sequence[TransactionIn], categories: Sequence[CategoryIn]
) -> list[HealthRecommendation]:
    names = {c.id: c.name for c in categories}
    recommendations: list[HealthRecommendation] = []

    for category_id, group in group_by_category(transactions).items():
        if category_id not in names or len(group) < 3:
            continue
        name = names[category_id]
        amounts = np.array([t.amount for t in group])
        average = float(amounts.mean())

        ordered = sorted(group, key=lambda t: t.timestamp)
        if len(ordered) >= 4:
            half = len(ordered) // 2
            earlier_avg = _average([t.amount for t in ordered[:half]])
            recent_avg = _average([t.amount for t in ordered[-half:]])
            if earlier_avg > 0 and recent_avg > earlier_avg * TREND_INCREASE_RATIO:
                increase = int((recent_avg - earlier_avg) / earlier_avg * 100)
                recommendations.append(
                    HealthRecommendation(
                        icon="chart.line.uptrend.xyaxis",
                        title=f"Increasing {name} Spending",
                        description=(
                            f"Your {name.lower()} spending has increased by "
                            f"{increase}% recently. Consider setting a monthly limit "
                            f"of ${int(earlier_avg * 1.1)} to control this trend."
                        ),
                        priority=RecommendationPriority.high,
                        relevance_score=0.9,
                        action_type=RecommendationAction.set_budget_limit,
                        related_category_id=category_id,
                    )
                )

        std = float(amounts.std())
        cv = std / average if average > 0 else 0.0
        if cv > HIGH_VARIATION_CV:
            recommendations.append(
                HealthRecommendation(
                    icon="waveform.path.ecg",
                    title=f"Inconsistent {name} Spending",
                    description=(
                        f"Your {name.lower()} spending varies significantly "
                        f"(${int(average - std)} - ${int(average + std)}). Try "
                        f"budgeting ${int(average)} monthly for better consistency."
                    ),
                    priority=RecommendationPriority.medium,
                    relevance_score=0.7,
                    action_type=RecommendationAction.create_budget_plan,
                    related_category_id=category_id,
                )
            )
    return recommendations


def behavioral_recommendations(
    transactions: Sequence[TransactionIn],
) -> list[HealthRecommendation]:
    recommendations: list[HealthRecommendation] = []

    weekend = [t.amount for t in transactions if t.date.weekday() >= 5]
    weekday = [t.amount for t in transactions if t.date.weekday() < 5]
    if weekend and weekday:
        weekend_avg = _average(weekend)
        weekday_avg = _average(weekday)
        if weekend_avg > weekday_avg * WEEKEND_RATIO:
            difference = int(weekend_avg - weekday_avg)
            recommendations.append(
                HealthRecommendation(
                    icon="calendar.badge.exclamationmark",
                    title="Weekend Overspending Pattern",
                    description=(
                        f"You spend ${difference} more per transaction on weekends. "
                        "Consider planning weekend activities with a set budget to "
                        "control impulse spending."
                    ),
                    priority=RecommendationPriority.medium,
                    relevance_score=0.8,
                    action_type=RecommendationAction.set_spending_alert,
                )
            )

    large = [t.amount for t in transactions if t.amount > LARGE_TRANSACTION_AMOUNT]
    if len(large) >= LARGE_TRANSACTION_COUNT:
        recommendations.append(
            HealthRecommendation(
                icon="exclamationmark.triangle",
                title="Frequent Large Purchases",
                description=(
                    f"You've made {len(large)} transactions over $200 "
                    f"(avg: ${int(_average(large))}). Consider implementing a "
                    "24-hour waiting period for purchases over $150."
                ),
                priority=RecommendationPriority.high,
                relevance_score=0.85,
                action_type=RecommendationAction.set_spending_alert,
            )
        )
    return recommendations


def contextual_recommendations(
    transactions: Sequence[TransactionIn], *, today: date
) -> list[HealthRecommendation]:
    recommendations: list[HealthRecommendation] = []

    if today.month in HOLIDAY_MONTHS:
        window_start = today - timedelta(days=30)
        recent_total = sum(
            t.amount for t in transactions if window_start < t.date <= today
        )
        if recent_total > HOLIDAY_SPEND_THRESHOLD:
            recommendations.append(
                HealthRecommendation(
                    icon="gift",
                    title="Holiday Season Budget Alert",
                    description=(
                        "Holiday spending can quickly add up. You've spent "
                        f"${int(recent_total)} this month. Consider setting aside a "
                        "specific amount for gifts and celebrations."
                    ),
                    priority=RecommendationPriority.medium,
                    relevance_score=0.75,
                    action_type=RecommendationAction.create_budget_plan,
                )
            )

    early = [t.amount for t in transactions if t.date.day <= 15]
    late = [t.amount for t in transactions if t.date.day > 15]
    if early and late and _average(early) >= _average(late) * EARLY_MONTH_RATIO:
        recommendations.append(
            HealthRecommendation(
                icon="calendar.badge.clock",
                title="Early Month Overspending",
                description=(
                    "You tend to spend more in the first half of the month. Try "
                    "spreading expenses evenly or save larger purchases for "
                    "mid-month."
                ),
                priority=RecommendationPriority.low,
                relevance_score=0.6,
                action_type=RecommendationAction.set_spending_alert,
            )
        )
    return recommendations


def goal_recommendations(
    health_score: FinancialHealthScore, transactions: Sequence[TransactionIn]
) -> list[HealthRecommendation]:
    recommendations: list[HealthRecommendation] = []

    if health_score.overall_score < FOCUS_SCORE_THRESHOLD:
        areas = [
            ("Budget Adherence", health_score.budget_adherence_score),
            ("Consistency", health_score.consistency_score),
            ("Savings Rate", health_score.savings_rate_score),
            ("Category Balance", health_score.category_balance_score),
        ]
        area, value = min(areas, key=lambda item: item[1])
        recommendations.append(
            HealthRecommendation(
                icon="target",
                title=f"Focus on {area}",
                description=(
                    f"Your {area.lower()} score is {int(value)}/100. Improving this "
                    f"by {int(75 - value)} points would boost your overall health "
                    "score significantly. Start with small, consistent changes."
                ),
                priority=RecommendationPriority.high,
                relevance_score=0.95,
                action_type=RecommendationAction.create_goal,
            )
        )

    total = sum(t.amount for t in transactions)
    if total > VELOCITY_THRESHOLD:
        daily = total / 30
        recommendations.append(
            HealthRecommendation(
                icon="speedometer",
                title="High Spending Velocity",
                description=(
                    f"You're spending ${int(daily)} per day on average. Consider "
                    f"implementing a daily spending limit of ${int(daily * 0.8)} to "
                    "build better control."
                ),
                priority=RecommendationPriority.medium,
                relevance_score=0.7,
                action_type=RecommendationAction.set_spending_alert,
            )
        )
    return recommendations


def generate_recommendations(
    health_score: FinancialHealthScore,
    transactions: Sequence[TransactionIn],
    categories: Sequence[CategoryIn],
    *,
    today: Optional[date] = None,
) -> list[HealthRecommendation]:
    today = today or date.today()
    recommendations = (
        category_recommendations(transactions, categories)
        + behavioral_recommendations(transactions)
        + contextual_recommendations(transactions, today=today)
        + goal_recommendations(health_score, transactions)
    )
    recommendations.sort(key=lambda r: r.relevance_score, reverse=True)
    return recommendations[:MAX_RECOMMENDATIONS]
