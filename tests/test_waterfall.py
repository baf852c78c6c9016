"""
Tests for the waterfall allocator.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from shopbooks.goals.waterfall import allocate, order_goals, status_message
from shopbooks.models.goal import Goal


TODAY = date(2024, 3, 10)


def goal(title: str, target: str, days: Optional[int] = None) -> Goal:
    deadline = TODAY + timedelta(days=days) if days is not None else None
    return Goal(title=title, target_amount=Decimal(target), deadline=deadline)


class TestOrdering:
    """Tests for deadline ordering."""

    def test_earliest_deadline_first(self):
        """Test goals are ordered by deadline, undated last."""
        late = goal("late", "1", days=30)
        soon = goal("soon", "1", days=2)
        undated = goal("undated", "1")
        assert [g.title for g in order_goals([undated, late, soon])] == ["soon", "late", "undated"]

    def test_stable_for_equal_deadlines(self):
        """Test goals with the same deadline keep their order."""
        first = goal("first", "1", days=5)
        second = goal("second", "1", days=5)
        assert order_goals([first, second]) == [first, second]


class TestAllocate:
    """Tests for the greedy allocation pass."""

    def test_pool_split_in_deadline_order(self):
        """Test 9000 across 5000 / 3000 / 8000 funds the first two fully."""
        goals = order_goals([
            goal("Stock", "8000", days=15),
            goal("Rent", "5000", days=5),
            goal("EMI", "3000", days=10),
        ])

        summary = allocate(goals, Decimal("9000"), TODAY)
        rent, emi, stock = summary.allocations

        assert rent.allocated_amount == Decimal("5000")
        assert rent.is_fully_funded
        assert emi.allocated_amount == Decimal("3000")
        assert emi.is_fully_funded
        assert stock.allocated_amount == Decimal("1000")
        assert stock.remaining_needed == Decimal("7000")
        assert stock.days_left == 15
        assert stock.daily_run_rate == Decimal("466.67")
        assert not stock.is_fully_funded
        assert summary.total_allocated == Decimal("9000")
        assert summary.unallocated == Decimal("0")

    def test_never_allocates_more_than_pool(self):
        """Test the total allocated never exceeds the pool."""
        goals = [goal("A", "700", days=1), goal("B", "700", days=2)]
        summary = allocate(goals, Decimal("1000"), TODAY)
        assert summary.total_allocated == Decimal("1000")
        assert all(a.allocated_amount <= a.target_amount for a in summary.allocations)

    def test_surplus_left_unallocated(self):
        """Test a pool larger than all targets leaves the rest over."""
        summary = allocate([goal("A", "700", days=1)], Decimal("1000"), TODAY)
        assert summary.unallocated == Decimal("300")

    def test_negative_pool_funds_nothing(self):
        """Test a loss-making month allocates zero but reports shortfalls."""
        summary = allocate([goal("A", "700", days=7)], Decimal("-2500"), TODAY)
        allocation = summary.allocations[0]
        assert summary.pool == Decimal("0")
        assert allocation.allocated_amount == Decimal("0")
        assert allocation.remaining_needed == Decimal("700")
        assert allocation.daily_run_rate == Decimal("100.00")

    def test_no_deadline_has_no_run_rate(self):
        """Test goals without a deadline get days_left 0 and no rate."""
        summary = allocate([goal("A", "700")], Decimal("0"), TODAY)
        assert summary.allocations[0].days_left == 0
        assert summary.allocations[0].daily_run_rate == Decimal("0")

    def test_empty_goal_list(self):
        """Test allocating to nothing keeps the pool."""
        summary = allocate([], Decimal("500"), TODAY)
        assert summary.allocations == []
        assert summary.unallocated == Decimal("500")


class TestStatusMessage:
    """Tests for the human-readable funding status."""

    def test_fully_funded(self):
        """Test the praise message for a funded goal."""
        assert status_message(Decimal("5000"), Decimal("0"), 5, Decimal("0")) == (
            "You've allocated enough (₹5,000) to cover this! Great job!"
        )

    def test_shortfall_with_days_left(self):
        """Test the per-day rate is rounded up."""
        assert status_message(Decimal("1000"), Decimal("7000"), 15, Decimal("466.67")) == (
            "You have ₹1,000 allocated. Need ₹7,000 more. That's ~₹467/day for 15 days."
        )

    def test_due_today(self):
        """Test the due-today message."""
        assert status_message(Decimal("0"), Decimal("700"), 0, Decimal("0")).endswith(" Due TODAY!")

    def test_overdue(self):
        """Test the overdue message counts days."""
        assert status_message(Decimal("0"), Decimal("700"), -3, Decimal("0")).endswith(
            " Overdue by 3 days. Prioritize this!"
        )

    def test_overdue_goal_in_allocation(self):
        """Test an overdue goal gets the overdue message from allocate()."""
        summary = allocate([goal("A", "700", days=-2)], Decimal("100"), TODAY)
        allocation = summary.allocations[0]
        assert allocation.days_left == -2
        assert "Overdue by 2 days" in allocation.status_message


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
