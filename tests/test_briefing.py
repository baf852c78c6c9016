"""
Tests for the morning briefing.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from shopbooks.briefing import BriefingService, greeting, split_due
from shopbooks.goals.service import GoalService
from shopbooks.models.finance import SaleTransaction
from shopbooks.models.goal import Goal, MetricType
from shopbooks.models.ledger import LedgerAccountRecord, LedgerBook, LedgerStatus
from shopbooks.services.storage.memory import InMemoryDataSource


NOW = datetime(2024, 3, 10, 8, 30)
TODAY = NOW.date()


def record(party: str, due: date, book: LedgerBook = LedgerBook.RECEIVABLE, **kwargs) -> LedgerAccountRecord:
    return LedgerAccountRecord(
        party_id=party,
        party_name=party.title(),
        book=book,
        amount=Decimal("500"),
        due_date=due,
        **kwargs,
    )


class TestGreeting:
    """Tests for the time-of-day title."""

    def test_parts_of_day(self):
        """Test morning, afternoon and evening cut-offs."""
        assert greeting("Asha", datetime(2024, 3, 10, 11, 59)) == "Good morning, Asha!"
        assert greeting("Asha", datetime(2024, 3, 10, 12, 0)) == "Good afternoon, Asha!"
        assert greeting("Asha", datetime(2024, 3, 10, 17, 0)) == "Good evening, Asha!"

    def test_without_name(self):
        """Test the greeting works without a configured name."""
        assert greeting(None, NOW) == "Good morning!"


class TestSplitDue:
    """Tests for picking due and overdue records."""

    def test_split(self):
        """Test overdue, due today, upcoming, undated and paid records."""
        records = [
            record("ravi", date(2024, 3, 8)),
            record("meena", date(2024, 3, 1)),
            record("kiran", TODAY),
            record("later", date(2024, 3, 20)),
            record("undated", None),
            record("settled", date(2024, 3, 2), status=LedgerStatus.PAID),
        ]

        overdue, due_today = split_due(records, TODAY)

        assert [r.party_id for r in overdue] == ["meena", "ravi"]
        assert overdue[0].days_past_due == 9
        assert overdue[0].is_overdue
        assert [r.party_id for r in due_today] == ["kiran"]
        assert not due_today[0].is_overdue


class TestBriefingService:
    """Tests for the assembled briefing."""

    @pytest.mark.asyncio
    async def test_generate(self):
        """Test both books, goals and profit figures end up in the briefing."""
        source = InMemoryDataSource(
            transactions=[
                SaleTransaction(sale_date=TODAY, sell_price=Decimal("1500"), buy_price=Decimal("1000")),
                SaleTransaction(sale_date=date(2024, 3, 2), sell_price=Decimal("4000")),
            ],
            goals=[Goal(
                title="Stock fund",
                target_amount=Decimal("10000"),
                metric_type=MetricType.MANUAL_CHECK,
                deadline=date(2024, 3, 31),
            )],
            ledger_records=[
                record("ravi", date(2024, 3, 8)),
                record("kiran", TODAY),
                record("later", date(2024, 3, 20)),
                record("wholesaler", date(2024, 3, 5), book=LedgerBook.PAYABLE),
            ],
        )
        goals = GoalService(source, clock=lambda: NOW)
        service = BriefingService(source, goals, user_name="Asha", clock=lambda: NOW)

        briefing = await service.generate()

        assert briefing.title == "Good morning, Asha!"
        assert briefing.today == TODAY
        assert [r.party_id for r in briefing.overdue_receivables] == ["ravi"]
        assert [r.party_id for r in briefing.due_today_receivables] == ["kiran"]
        assert [r.party_id for r in briefing.overdue_payables] == ["wholesaler"]
        assert briefing.due_today_payables == []
        assert briefing.pending_tasks == 3
        assert [g.title for g in briefing.goals] == ["Stock fund"]
        assert briefing.waterfall.pool == Decimal("4500")
        assert briefing.profit_today == Decimal("500")
        assert briefing.profit_month == Decimal("4500")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
