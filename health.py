"""Composite financial health score.

Five sub-scores, each in [0, 100], are combined with fixed weights:

    budget adherence 0.30, consistency 0.20, savings rate 0.25,
    category balance 0.15, trend 0.10

Every sub-score falls back to a neutral default instead of dividing by zero.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional, Sequence

import numpy as np

from models import TransactionType
from schemas import BudgetPlanIn, CategoryIn, TransactionIn

logger = logging.getLogger(__name__)

WEIGHTS = {
    "budget_adherence": 0.30,
    "consistency": 0.20,
    "savings_rate": 0.25,
    "category_balance": 0.15,
    "trend": 0.10,
}
PLACEHOLDER_SAVINGS_RATE_SCORE = 75.0
TARGET_SAVINGS_RATE = 0.20
LARGE_INCREMENTAL_AVERAGE = 1000.0


@dataclass(frozen=True)
class FinancialHealthScore:
    overall_score: float
    budget_adherence_score: float
    consistency_score: float
    savings_rate_score: float
    category_balance_score: float
    trend_score: float
    calculated_at: datetime

    def sub_scores(self) -> dict[str, float]:
        return {
            "Budget Adherence": self.budget_adherence_score,
            "Consistency": self.consistency_score,
            "Savings Rate": self.savings_rate_score,
            "Category Balance": self.category_balance_score,
            "Trend": self.trend_score,
        }


SavingsRateStrategy = Callable[
    [Sequence[TransactionIn], Sequence[BudgetPlanIn]], float
]


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def placeholder_savings_rate(
    transactions: Sequence[TransactionIn], plans: Sequence[BudgetPlanIn]
) -> float:
    # Fixed value until income data drives this score; swap in a real
    # strategy through HealthScorer(savings_rate=...).
    return PLACEHOLDER_SAVINGS_RATE_SCORE


def income_savings_rate(
    transactions: Sequence[TransactionIn], plans: Sequence[BudgetPlanIn]
) -> float:
    """Share of income kept, scored against a 20% target."""
    income = sum(t.amount for t in transactions if t.type == TransactionType.income)
    expenses = sum(t.amount for t in transactions if t.type == TransactionType.expense)
    if income <= 0:
        return 50.0
    rate = (income - expenses) / income
    return 100.0 * _clamp(rate / TARGET_SAVINGS_RATE, 0.0, 1.0)


def budget_adherence_score(
    transactions: Sequence[TransactionIn],
    plans: Sequence[BudgetPlanIn],
    categories: Sequence[CategoryIn],
) -> float:
    if not plans:
        return 100.0
    kinds = {c.id: c.type for c in categories}

    income_planned = 0.0
    expense_planned = 0.0
    has_income_plans = False
    has_expense_plans = False
    for plan in plans:
        kind = kinds.get(plan.category_id) if plan.category_id else None
        if kind is None:
            logger.debug(f"health_skip: plan={plan.id} reason=unknown_category")
            continue
        if kind == TransactionType.income:
            income_planned += plan.amount
            has_income_plans = True
        else:
            expense_planned += plan.amount
            has_expense_plans = True

    income_actual = sum(
        t.amount for t in transactions if t.type == TransactionType.income
    )
    expense_actual = sum(
        t.amount for t in transactions if t.type == TransactionType.expense
    )

    scores: list[float] = []
    if has_income_plans and income_planned > 0:
        scores.append(min(100.0, 100.0 * income_actual / income_planned))
    if has_expense_plans and expense_planned > 0:
        ratio = min(expense_actual / expense_planned, 2.0)
        scores.append(max(0.0, 100.0 * (2.0 - ratio)))
    if not scores:
        return 100.0
    return sum(scores) / len(scores)


def consistency_score(transactions: Sequence[TransactionIn]) -> float:
    if len(transactions) <= 1:
        return 100.0
    amounts = np.array([t.amount for t in transactions])
    mean = float(amounts.mean())
    cv = float(amounts.std()) / mean if mean > 0 else 0.0
    return max(0.0, 100.0 * (1.0 - min(cv, 1.0)))


def gini_coefficient(totals: Sequence[float]) -> float:
    """Inequality over category totals.

    Normalises by ``(n - 1) * sum(proportions)`` rather than the textbook
    ``n * sum``; equal shares still give 0 and a single dominant share gives 1.
    """
    n = len(totals)
    grand_total = sum(totals)
    if n < 2 or grand_total <= 0:
        return 0.0
    proportions = sorted(t / grand_total for t in totals)
    weighted = sum(
        (2 * rank - n - 1) * p for rank, p in enumerate(proportions, start=1)
    )
    return weighted / ((n - 1) * sum(proportions))


def category_balance_score(transactions: Sequence[TransactionIn]) -> float:
    totals: dict[str, float] = defaultdict(float)
    for txn in transactions:
        if not txn.category_id:
            continue
        totals[txn.category_id] += txn.amount
    if len(totals) < 2:
        return 50.0
    if sum(totals.values()) == 0:
        return 100.0
    return max(0.0, 100.0 * (1.0 - gini_coefficient(list(totals.values()))))


def trend_score(transactions: Sequence[TransactionIn]) -> float:
    if len(transactions) < 3:
        return 50.0
    ordered = sorted(transactions, key=lambda t: t.timestamp)
    third = len(ordered) // 3
    recent = sum(t.amount for t in ordered[-third:])
    earlier = sum(t.amount for t in ordered[:third])
    if earlier == 0:
        return 50.0
    ratio = recent / earlier
    if ratio <= 1.0:
        return 100.0 * ratio
    return max(0.0, 100.0 / ratio)


class HealthScorer:
    def __init__(self, savings_rate: Optional[SavingsRateStrategy] = None) -> None:
        self.savings_rate = savings_rate or placeholder_savings_rate

    def compute(
        self,
        transactions: Sequence[TransactionIn],
        plans: Sequence[BudgetPlanIn],
        categories: Sequence[CategoryIn],
        *,
        now: Optional[datetime] = None,
    ) -> FinancialHealthScore:
        adherence = _clamp(budget_adherence_score(transactions, plans, categories))
        consistency = _clamp(consistency_score(transactions))
        savings = _clamp(self.savings_rate(transactions, plans))
        balance = _clamp(category_balance_score(transactions))
        trend = _clamp(trend_score(transactions))

        overall = (
            WEIGHTS["budget_adherence"] * adherence
            + WEIGHTS["consistency"] * consistency
            + WEIGHTS["savings_rate"] * savings
            + WEIGHTS["category_balance"] * balance
            + WEIGHTS["trend"] * trend
        )
        return FinancialHealthScore(
            overall_score=_clamp(overall),
            budget_adherence_score=adherence,
            consistency_score=consistency,
            savings_rate_score=savings,
            category_balance_score=balance,
            trend_score=trend,
            calculated_at=now or datetime.utcnow(),
        )


def adjust_incremental(
    score: FinancialHealthScore,
    new_transactions: Sequence[TransactionIn],
    *,
    now: Optional[datetime] = None,
) -> FinancialHealthScore:
    """Cheap adjustment after a burst of new transactions.

    Large average amounts knock five points off consistency; the overall
    score moves halfway toward the adjusted consistency.
    """
    if len(new_transactions) < 3:
        return score
    average = sum(t.amount for t in new_transactions) / len(new_transactions)
    consistency = score.consistency_score
    if average > LARGE_INCREMENTAL_AVERAGE:
        consistency = max(0.0, consistency - 5.0)
    return replace(
        score,
        overall_score=_clamp((score.overall_score + consistency) / 2.0),
        consistency_score=consistency,
        calculated_at=now or datetime.utcnow(),
    )
