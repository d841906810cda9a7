from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from models import AnomalySeverity
from patterns import SpendingPattern, group_by_category
from schemas import TransactionIn, format_currency

MIN_BATCH_TRANSACTIONS = 6
Z_SCORE_THRESHOLD = 2.5
RELATIVE_DEVIATION_THRESHOLD = 1.5


@dataclass(frozen=True)
class AnomalyResult:
    is_anomaly: bool
    confidence: float
    reason: str
    severity: AnomalySeverity
    transaction: TransactionIn


def determine_severity(z_score: float) -> AnomalySeverity:
    if z_score > 4.0:
        return AnomalySeverity.critical
    if z_score > 3.5:
        return AnomalySeverity.high
    if z_score > 3.0:
        return AnomalySeverity.medium
    return AnomalySeverity.low


def detect_outliers(transactions: Sequence[TransactionIn]) -> list[AnomalyResult]:
    """Flag amounts more than 2.5 population standard deviations from the mean."""
    if len(transactions) < MIN_BATCH_TRANSACTIONS:
        return []
    amounts = np.array([t.amount for t in transactions])
    mean = float(amounts.mean())
    std = float(amounts.std())
    if std == 0:
        return []

    results: list[AnomalyResult] = []
    for txn, amount in zip(transactions, amounts):
        z_score = abs(float(amount) - mean) / std
        if z_score <= Z_SCORE_THRESHOLD:
            continue
        results.append(
            AnomalyResult(
                is_anomaly=True,
                confidence=min(z_score / Z_SCORE_THRESHOLD, 1.0),
                reason=(
                    f"Transaction amount is {z_score:.1f} standard deviations "
                    "from your average"
                ),
                severity=determine_severity(z_score),
                transaction=txn,
            )
        )
    return results


def detect_anomalies(transactions: Iterable[TransactionIn]) -> list[AnomalyResult]:
    results: list[AnomalyResult] = []
    for group in group_by_category(transactions).values():
        results.extend(detect_outliers(group))
    return results


def detect_deviation(
    transaction: TransactionIn, pattern: SpendingPattern
) -> AnomalyResult:
    average = pattern.average_amount
    amount = transaction.amount
    relative_deviation = abs(amount - average) / average if average > 0 else 0.0
    return AnomalyResult(
        is_anomaly=relative_deviation > RELATIVE_DEVIATION_THRESHOLD,
        confidence=min(relative_deviation / 2.0, 1.0),
        reason=(
            f"Transaction of {format_currency(amount)} is "
            f"{relative_deviation * 100:.1f}% different from your average of "
            f"{format_currency(average)}"
        ),
        severity=determine_severity(relative_deviation * 2.0),
        transaction=transaction,
    )


def is_noteworthy(result: Optional[AnomalyResult]) -> bool:
    """Incremental detections only surface at high or critical severity."""
    return bool(
        result
        and result.is_anomaly
        and result.severity in (AnomalySeverity.high, AnomalySeverity.critical)
    )
