from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from schemas import TransactionIn

logger = logging.getLogger(__name__)

MIN_PATTERN_TRANSACTIONS = 3
WINTER_MONTHS = frozenset({12, 1, 2})
SUMMER_MONTHS = frozenset({6, 7, 8})
WINTER_WEIGHT = 1.2
SUMMER_WEIGHT = 1.1


@dataclass(frozen=True)
class SpendingPattern:
    category_id: str
    average_amount: float
    frequency: int
    day_of_week_pattern: tuple[float, ...]  # 0 = Sunday .. 6 = Saturday
    monthly_trend: tuple[float, ...]  # January .. December, raw sums
    seasonal_factor: float
    confidence_score: float


def group_by_category(
    transactions: Iterable[TransactionIn],
) -> dict[str, list[TransactionIn]]:
    groups: dict[str, list[TransactionIn]] = defaultdict(list)
    for txn in transactions:
        if not txn.category_id:
            logger.debug(f"pattern_skip: transaction={txn.id} reason=no_category")
            continue
        groups[txn.category_id].append(txn)
    return dict(groups)


def sunday_first_weekday(txn: TransactionIn) -> int:
    return (txn.date.weekday() + 1) % 7


def day_of_week_pattern(transactions: Sequence[TransactionIn]) -> tuple[float, ...]:
    buckets = np.zeros(7)
    for txn in transactions:
        buckets[sunday_first_weekday(txn)] += txn.amount
    total = buckets.sum()
    if total > 0:
        buckets = buckets / total
    return tuple(float(v) for v in buckets)


def monthly_trend(transactions: Sequence[TransactionIn]) -> tuple[float, ...]:
    buckets = np.zeros(12)
    for txn in transactions:
        month = txn.date.month
        if 1 <= month <= 12:
            buckets[month - 1] += txn.amount
    return tuple(float(v) for v in buckets)


def seasonal_weight(month: int) -> float:
    if month in WINTER_MONTHS:
        return WINTER_WEIGHT
    if month in SUMMER_MONTHS:
        return SUMMER_WEIGHT
    return 1.0


def seasonal_factor(transactions: Sequence[TransactionIn]) -> float:
    if not transactions:
        return 1.0
    raw = np.array([t.amount for t in transactions])
    weighted = np.array([t.amount * seasonal_weight(t.date.month) for t in transactions])
    regular_average = float(raw.mean())
    if regular_average <= 0:
        return 1.0
    return float(weighted.mean()) / regular_average


def calculate_spending_pattern(transactions: Sequence[TransactionIn]) -> SpendingPattern:
    amounts = np.array([t.amount for t in transactions])
    count = len(transactions)
    category_id = (transactions[0].category_id or "") if transactions else ""
    return SpendingPattern(
        category_id=category_id,
        average_amount=float(amounts.mean()) if count else 0.0,
        frequency=count,
        day_of_week_pattern=day_of_week_pattern(transactions),
        monthly_trend=monthly_trend(transactions),
        seasonal_factor=seasonal_factor(transactions),
        confidence_score=min(count / 10.0, 1.0),
    )


def detect_spending_patterns(
    transactions: Iterable[TransactionIn],
) -> dict[str, SpendingPattern]:
    patterns: dict[str, SpendingPattern] = {}
    for category_id, group in group_by_category(transactions).items():
        if len(group) < MIN_PATTERN_TRANSACTIONS:
            continue
        patterns[category_id] = calculate_spending_pattern(group)
    return patterns
