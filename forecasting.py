from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from patterns import SpendingPattern, group_by_category
from periods import next_period_start
from schemas import TransactionIn

MIN_FORECAST_TRANSACTIONS = 5
INTERVAL_Z = 1.96


@dataclass(frozen=True)
class BudgetForecast:
    category_id: str
    forecast_amount: float
    lower: float
    upper: float
    forecast_date: date
    based_on_pattern: Optional[SpendingPattern] = None

    @property
    def confidence_interval(self) -> tuple[float, float]:
        return (self.lower, self.upper)


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    standard_error: float
    n: int

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def fit_linear_trend(amounts: Sequence[float]) -> LinearFit:
    """Ordinary least squares over ordinal positions 1..n."""
    y = np.asarray(amounts, dtype=float)
    n = len(y)
    x = np.arange(1, n + 1, dtype=float)
    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_xx = (x * x).sum()

    denominator = n * sum_xx - sum_x * sum_x
    slope = (n * sum_xy - sum_x * sum_y) / denominator if denominator else 0.0
    intercept = (sum_y - slope * sum_x) / n if n else 0.0

    residuals = (slope * x + intercept) - y
    mse = float((residuals * residuals).mean()) if n else 0.0
    return LinearFit(
        slope=float(slope),
        intercept=float(intercept),
        standard_error=math.sqrt(mse),
        n=n,
    )


def calculate_forecast(
    transactions: Sequence[TransactionIn],
    category_id: str,
    pattern: Optional[SpendingPattern] = None,
    *,
    today: Optional[date] = None,
) -> Optional[BudgetForecast]:
    if len(transactions) < MIN_FORECAST_TRANSACTIONS:
        return None
    ordered = sorted(transactions, key=lambda t: t.timestamp)
    fit = fit_linear_trend([t.amount for t in ordered])
    projected = fit.predict(fit.n + 1)
    margin = INTERVAL_Z * fit.standard_error
    return BudgetForecast(
        category_id=category_id,
        forecast_amount=max(0.0, projected),
        lower=max(0.0, projected - margin),
        upper=projected + margin,
        forecast_date=next_period_start(today or date.today()),
        based_on_pattern=pattern,
    )


def generate_forecasts(
    transactions: Iterable[TransactionIn],
    patterns: Optional[Mapping[str, SpendingPattern]] = None,
    *,
    today: Optional[date] = None,
) -> dict[str, BudgetForecast]:
    patterns = patterns or {}
    forecasts: dict[str, BudgetForecast] = {}
    for category_id, group in group_by_category(transactions).items():
        forecast = calculate_forecast(
            group, category_id, patterns.get(category_id), today=today
        )
        if forecast is not None:
            forecasts[category_id] = forecast
    return forecasts
