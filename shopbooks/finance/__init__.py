"""Financial aggregation primitives."""

from shopbooks.finance.aggregation import (
    FinancialAggregator,
    daily_totals,
    summarize_rows,
)

__all__ = [
    "FinancialAggregator",
    "daily_totals",
    "summarize_rows",
]
