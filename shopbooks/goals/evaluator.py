"""
Goal Metric Evaluator

Measures one goal against the sales data and writes the result back.

CRITICAL RULES:
1. MANUAL_CHECK and EMI goals are never recomputed. Their progress belongs
   to the user and the evaluator doesn't even read the data source for them.
2. Completion wins. If the measured value reaches the target the goal is
   written as COMPLETED (with completed_at) in the same write.
3. Completed goals never go back to ACTIVE.
4. No guessing. A read failure propagates; a goal that can't be measured
   (product goal without a product) is skipped with an explicit reason.

The measurement window is [start_tracking_date, effective_end], where
effective_end is the deadline once it has passed, otherwise today.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog

from shopbooks.audit.logger import AuditLogger
from shopbooks.finance.aggregation import daily_totals, summarize_rows
from shopbooks.models.finance import DateRange
from shopbooks.models.goal import (
    Goal,
    GoalEvaluation,
    GoalStatus,
    MetricType,
)
from shopbooks.services.storage.interface import FinancialDataSource


HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _margin_percent(revenue: Decimal, cost: Decimal) -> Decimal:
    return (revenue - cost) / revenue * HUNDRED


def effective_range(goal: Goal, today: date) -> Optional[DateRange]:
    """
    The window a goal is measured over, or None if it hasn't started yet.
    """
    end = goal.deadline if goal.deadline and goal.deadline < today else today
    if end < goal.start_tracking_date:
        return None
    return DateRange(start=goal.start_tracking_date, end=end)


def days_elapsed(date_range: DateRange) -> int:
    """Whole days in the window, counting both ends, at least 1."""
    return max(1, abs((date_range.end - date_range.start).days) + 1)


class GoalMetricEvaluator:
    """
    Computes and persists a goal's current_amount.

    One instance can be shared; it keeps no state between calls.
    """

    def __init__(
        self,
        data_source: FinancialDataSource,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._source = data_source
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._logger = structlog.get_logger()

    async def evaluate(
        self,
        goal: Goal,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> GoalEvaluation:
        """
        Measure the goal and persist it if anything changed.

        Returns:
            GoalEvaluation with the (possibly updated) goal

        Raises:
            DataSourceError: If a read or write fails
        """
        if goal.is_manual or goal.status == GoalStatus.ARCHIVED:
            return GoalEvaluation(goal=goal, current_amount=goal.current_amount)

        now = self._clock()
        today = today or now.date()

        if goal.metric_type == MetricType.PRODUCT_SALES and not goal.product_id:
            reason = "product_sales goal has no product_id"
            self._logger.warning("goal_evaluation_skipped", goal_id=goal.id, reason=reason)
            if self._audit_logger:
                await self._audit_logger.log_goal_evaluation_skipped(
                    goal_id=goal.id,
                    reason=reason,
                    correlation_id=correlation_id,
                )
            return GoalEvaluation(
                goal=goal,
                current_amount=goal.current_amount,
                skipped_reason=reason,
            )

        window = effective_range(goal, today)
        measured = await self.measure(goal, window) if window else Decimal("0")
        # current_amount is never negative; a loss-making window reads as 0
        new_amount = max(measured, Decimal("0"))

        # Completion takes priority over the plain "write if changed" path
        if new_amount >= goal.target_amount and goal.status != GoalStatus.COMPLETED:
            updated = await self._source.update_goal(goal.id, {
                "current_amount": new_amount,
                "status": GoalStatus.COMPLETED,
                "completed_at": now,
            })
            if self._audit_logger:
                await self._audit_logger.log_goal_completed(
                    goal_id=goal.id,
                    title=goal.title,
                    current_amount=new_amount,
                    correlation_id=correlation_id,
                )
            return GoalEvaluation(
                goal=updated,
                current_amount=new_amount,
                persisted=True,
                completed_now=True,
            )

        if new_amount == goal.current_amount:
            return GoalEvaluation(goal=goal, current_amount=new_amount)

        updated = await self._source.update_goal(goal.id, {"current_amount": new_amount})
        if self._audit_logger:
            await self._audit_logger.log_goal_progress(
                goal_id=goal.id,
                previous_amount=goal.current_amount,
                new_amount=new_amount,
                source="evaluator",
                correlation_id=correlation_id,
            )
        return GoalEvaluation(goal=updated, current_amount=new_amount, persisted=True)

    async def measure(self, goal: Goal, window: DateRange) -> Decimal:
        """Reduce the window's transactions (and expenses) to one number."""
        metric = goal.metric_type

        if metric == MetricType.PRODUCT_SALES:
            rows = await self._source.query_transactions(window, product_id=goal.product_id)
            return sum((t.quantity for t in rows), Decimal("0"))

        transactions = await self._source.query_transactions(window)

        if metric in (MetricType.NET_PROFIT, MetricType.AVG_PROFIT):
            expenses = await self._source.query_expenses(window)
            net = summarize_rows(window, transactions, expenses).net_profit
            if metric == MetricType.NET_PROFIT:
                return net
            return _quantize(net / days_elapsed(window))

        summary = summarize_rows(window, transactions)

        if metric == MetricType.REVENUE:
            return summary.revenue
        if metric == MetricType.GROSS_PROFIT:
            return summary.gross_profit
        if metric == MetricType.SALES_COUNT:
            return Decimal(summary.sales_count)
        if metric == MetricType.CUSTOMER_COUNT:
            return Decimal(summary.customer_count)
        if metric == MetricType.AVG_REVENUE:
            return _quantize(summary.revenue / days_elapsed(window))
        if metric == MetricType.AVG_MARGIN:
            if summary.revenue == 0:
                return Decimal("0")
            return _quantize(_margin_percent(summary.revenue, summary.cost))

        days = daily_totals(transactions)

        if metric == MetricType.DAILY_REVENUE:
            values = [d.revenue for d in days.values()]
        elif metric in (MetricType.DAILY_MARGIN, MetricType.MARGIN):
            values = [
                _quantize(_margin_percent(d.revenue, d.cost))
                for d in days.values()
                if d.revenue != 0
            ]
        else:
            raise ValueError(f"Unsupported metric type: {metric}")

        # One good day is enough: snap to target instead of reporting the max
        if any(v >= goal.target_amount for v in values):
            return goal.target_amount
        return max(values, default=Decimal("0"))
