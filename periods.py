from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_period(day: date) -> Period:
    first = day.replace(day=1)
    end = add_months(first, 1) - date.resolution
    return Period(f"{first.year:04d}-{first.month:02d}", first, end)


def next_period_start(day: date) -> date:
    """First day of the month after ``day``; forecasts target this date."""
    return add_months(day, 1)


def resolve_period(period: Optional[str], *, today: Optional[date] = None) -> Period:
    today = today or date.today()
    if not period or period == "this_month":
        return month_period(today)
    if period == "last_month":
        return month_period(add_months(today, -1))
    try:
        year_str, month_str = period.split("-")
        first = date(int(year_str), int(month_str), 1)
    except ValueError as exc:
        raise ValueError(f"Invalid period: {period!r}") from exc
    return month_period(first)
