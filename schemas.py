import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


def cents_to_units(cents: int) -> float:
    return cents / 100.0


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


class TransactionIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    type: TransactionType = TransactionType.expense
    amount_cents: int
    date: dt.date
    occurred_at: Optional[dt.datetime] = None
    note: Optional[str] = Field(default=None, max_length=200)

    @property
    def amount(self) -> float:
        """Magnitude in currency units; the sign lives in ``type``."""
        return cents_to_units(abs(self.amount_cents))

    @property
    def timestamp(self) -> dt.datetime:
        if self.occurred_at is not None:
            return self.occurred_at
        return dt.datetime.combine(self.date, dt.time())


class CategoryIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType = TransactionType.expense
    color: Optional[str] = Field(default=None, max_length=7)


class BudgetPlanIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    amount_cents: int = Field(..., ge=0)
    period_id: Optional[str] = None

    @property
    def amount(self) -> float:
        return cents_to_units(self.amount_cents)
