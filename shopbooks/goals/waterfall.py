"""
Waterfall Allocator

Splits this month's profit pool across active goals, earliest deadline
first. Each goal takes as much as it needs (up to its target) from what
is left; the next goal gets the remainder.

    pool 9000 -> [A: 5000 of 5000] [B: 3000 of 3000] [C: 1000 of 8000]

Strict single pass. No goal is revisited and nothing is reclaimed from an
earlier goal. Ordering is done by order_goals() before allocate().
"""

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from shopbooks.models.goal import Goal, WaterfallAllocation, WaterfallSummary


def order_goals(goals: Iterable[Goal]) -> list[Goal]:
    """Deadline ascending, goals without a deadline last. Stable."""
    return sorted(goals, key=lambda g: g.deadline_sort_key)


def _rupees(value: Decimal) -> str:
    if value == value.to_integral_value():
        return f"₹{int(value):,}"
    return f"₹{value:,.2f}"


def status_message(
    allocated: Decimal,
    remaining: Decimal,
    days_left: int,
    daily_run_rate: Decimal,
) -> str:
    """Human-readable funding status for one goal."""
    if remaining <= 0:
        return f"You've allocated enough ({_rupees(allocated)}) to cover this! Great job!"

    message = f"You have {_rupees(allocated)} allocated. Need {_rupees(remaining)} more."
    if days_left > 0:
        per_day = Decimal(math.ceil(daily_run_rate))
        message += f" That's ~{_rupees(per_day)}/day for {days_left} days."
    elif days_left == 0:
        message += " Due TODAY!"
    else:
        message += f" Overdue by {abs(days_left)} days. Prioritize this!"
    return message


def allocate(
    ordered_goals: list[Goal],
    pool: Decimal,
    today: date,
) -> WaterfallSummary:
    """
    Allocate the pool across goals in the given order.

    A negative pool is treated as 0: nothing gets funded but every
    goal's shortfall is still reported.
    """
    available = max(pool, Decimal("0"))
    remaining_pool = available
    allocations = []

    for goal in ordered_goals:
        allocated = min(remaining_pool, goal.target_amount)
        remaining_pool -= allocated
        remaining = goal.target_amount - allocated
        is_funded = remaining <= 0
        days_left = (goal.deadline - today).days if goal.deadline else 0

        run_rate = Decimal("0")
        if not is_funded and days_left > 0:
            run_rate = (remaining / days_left).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        allocations.append(WaterfallAllocation(
            goal_id=goal.id,
            title=goal.title,
            target_amount=goal.target_amount,
            deadline=goal.deadline,
            allocated_amount=allocated,
            remaining_needed=remaining,
            days_left=days_left,
            daily_run_rate=run_rate,
            is_fully_funded=is_funded,
            status_message=status_message(allocated, remaining, days_left, run_rate),
        ))

    return WaterfallSummary(pool=available, allocations=allocations)
