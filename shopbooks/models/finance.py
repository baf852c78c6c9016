"""
Sales and Expense Models

Read-only views of the shop's transaction history. The goal engine and
the waterfall only ever read these; they are written by the point-of-sale
side of the application.

DESIGN DECISION: Rows are soft-deleted (deleted_at set) rather than removed.
Every aggregation excludes soft-deleted rows; the data source contract
guarantees they never reach the engine.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DateRange(BaseModel):
    """Inclusive calendar date range."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode='after')
    def validate_order(self) -> 'DateRange':
        if self.end < self.start:
            raise ValueError("Date range end cannot be before start")
        return self

    @classmethod
    def single_day(cls, day: date) -> 'DateRange':
        return cls(start=day, end=day)

    @classmethod
    def month_to_date(cls, today: date) -> 'DateRange':
        """From the first of today's month up to and including today."""
        return cls(start=today.replace(day=1), end=today)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1


class SaleTransaction(BaseModel):
    """
    One sold line: a product sold to (optionally) a known customer.

    Revenue and cost are always derived from unit prices and quantity,
    never stored, so an edited price can't leave a stale total behind.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    sale_date: date
    sell_price: Decimal = Field(..., ge=0, description="Unit selling price in INR")
    buy_price: Decimal = Field(default=Decimal("0"), ge=0, description="Unit cost in INR")
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    customer_id: Optional[str] = None
    product_id: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def revenue(self) -> Decimal:
        return self.sell_price * self.quantity

    @property
    def cost(self) -> Decimal:
        return self.buy_price * self.quantity

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Expense(BaseModel):
    """A shop expense (rent, electricity, wages...)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    expense_date: date
    amount: Decimal = Field(..., ge=0, description="Amount in INR")
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class DayTotals(BaseModel):
    """Revenue and cost of one calendar day."""

    revenue: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")

    @property
    def profit(self) -> Decimal:
        return self.revenue - self.cost


class FinancialSummary(BaseModel):
    """
    Aggregate figures for a date range.

    net_profit = revenue - cost - expenses
    """

    date_range: DateRange
    revenue: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    sales_count: int = 0
    customer_count: int = 0

    @property
    def gross_profit(self) -> Decimal:
        return self.revenue - self.cost

    @property
    def net_profit(self) -> Decimal:
        return self.revenue - self.cost - self.expenses
