"""
Financial Aggregation

Turns raw sales and expense rows into the figures the goal engine needs:
revenue, cost, expenses, net profit, and per-day totals.

    net_profit = sum(sell_price * qty) - sum(buy_price * qty) - sum(expenses)

Soft-deleted rows never reach this module (data source contract).
Read errors from the data source propagate unchanged.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from shopbooks.models.finance import (
    DateRange,
    DayTotals,
    Expense,
    FinancialSummary,
    SaleTransaction,
)
from shopbooks.services.storage.interface import SalesDataSource


def summarize_rows(
    date_range: DateRange,
    transactions: Iterable[SaleTransaction],
    expenses: Iterable[Expense] = (),
) -> FinancialSummary:
    """Pure aggregation over already-fetched rows."""
    revenue = Decimal("0")
    cost = Decimal("0")
    sales_count = 0
    customers = set()

    for t in transactions:
        revenue += t.revenue
        cost += t.cost
        sales_count += 1
        if t.customer_id:
            customers.add(t.customer_id)

    return FinancialSummary(
        date_range=date_range,
        revenue=revenue,
        cost=cost,
        expenses=sum((e.amount for e in expenses), Decimal("0")),
        sales_count=sales_count,
        customer_count=len(customers),
    )


def daily_totals(transactions: Iterable[SaleTransaction]) -> dict[date, DayTotals]:
    """Revenue and cost per calendar day. Days without sales are absent."""
    days: dict[date, DayTotals] = defaultdict(DayTotals)
    for t in transactions:
        day = days[t.sale_date]
        day.revenue += t.revenue
        day.cost += t.cost
    return dict(days)


class FinancialAggregator:
    """Async aggregation on top of a SalesDataSource."""

    def __init__(self, source: SalesDataSource):
        self._source = source

    async def summarize(self, date_range: DateRange) -> FinancialSummary:
        transactions = await self._source.query_transactions(date_range)
        expenses = await self._source.query_expenses(date_range)
        return summarize_rows(date_range, transactions, expenses)

    async def net_profit(self, date_range: DateRange) -> Decimal:
        return (await self.summarize(date_range)).net_profit

    async def revenue(self, date_range: DateRange) -> Decimal:
        transactions = await self._source.query_transactions(date_range)
        return summarize_rows(date_range, transactions).revenue

    async def month_to_date_profit(self, today: date) -> Decimal:
        """Net profit from the 1st of today's month through today."""
        return await self.net_profit(DateRange.month_to_date(today))
