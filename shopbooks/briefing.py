"""
Morning Briefing

What the owner sees first thing: who owes money today, who we owe, how
the goals stand and what the month has earned so far.

Read-mostly. The only writes are the goal refresh that the waterfall
does before allocating.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from pydantic import BaseModel, Field

from shopbooks.finance.aggregation import FinancialAggregator
from shopbooks.goals.service import GoalService
from shopbooks.models.finance import DateRange
from shopbooks.models.goal import Goal, GoalStatus, WaterfallSummary
from shopbooks.models.ledger import LedgerAccountRecord, LedgerBook, LedgerStatus
from shopbooks.services.storage.interface import FinancialDataSource


class DueReminder(BaseModel):
    """A pending ledger record that is due today or overdue."""

    record_id: str
    party_id: str
    party_name: Optional[str] = None
    book: LedgerBook
    amount: Decimal
    due_date: date
    days_past_due: int

    @property
    def is_overdue(self) -> bool:
        return self.days_past_due > 0


class MorningBriefing(BaseModel):
    """Everything the briefing screen shows, computed for one day."""

    title: str
    today: date
    overdue_receivables: list[DueReminder] = Field(default_factory=list)
    due_today_receivables: list[DueReminder] = Field(default_factory=list)
    overdue_payables: list[DueReminder] = Field(default_factory=list)
    due_today_payables: list[DueReminder] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    waterfall: WaterfallSummary
    profit_today: Decimal = Decimal("0")
    profit_month: Decimal = Decimal("0")

    @property
    def pending_tasks(self) -> int:
        return (
            len(self.overdue_receivables)
            + len(self.due_today_receivables)
            + len(self.overdue_payables)
            + len(self.due_today_payables)
        )


def greeting(user_name: Optional[str], now: datetime) -> str:
    if now.hour < 12:
        part = "Good morning"
    elif now.hour < 17:
        part = "Good afternoon"
    else:
        part = "Good evening"
    return f"{part}, {user_name}!" if user_name else f"{part}!"


def split_due(
    records: list[LedgerAccountRecord],
    today: date,
) -> tuple[list[DueReminder], list[DueReminder]]:
    """(overdue, due today) among pending records, most overdue first."""
    overdue, due_today = [], []
    for record in records:
        days = record.days_past_due(today)
        if days is None or days < 0 or record.status != LedgerStatus.PENDING:
            continue
        reminder = DueReminder(
            record_id=record.id,
            party_id=record.party_id,
            party_name=record.party_name,
            book=record.book,
            amount=record.amount,
            due_date=record.due_date,
            days_past_due=days,
        )
        (overdue if days > 0 else due_today).append(reminder)

    overdue.sort(key=lambda r: -r.days_past_due)
    return overdue, due_today


class BriefingService:
    """Builds the MorningBriefing from goals, ledgers and profit figures."""

    def __init__(
        self,
        data_source: FinancialDataSource,
        goal_service: GoalService,
        user_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._source = data_source
        self._goals = goal_service
        self._aggregator = FinancialAggregator(data_source)
        self._user_name = user_name
        self._clock = clock or datetime.now

    async def generate(self, today: Optional[date] = None) -> MorningBriefing:
        now = self._clock()
        today = today or now.date()

        receivables = await self._source.list_ledger_records(
            LedgerBook.RECEIVABLE, status=LedgerStatus.PENDING,
        )
        payables = await self._source.list_ledger_records(
            LedgerBook.PAYABLE, status=LedgerStatus.PENDING,
        )
        overdue_in, due_in = split_due(receivables, today)
        overdue_out, due_out = split_due(payables, today)

        # Refreshes every goal before allocating
        waterfall = await self._goals.waterfall(today)
        goals = await self._goals.list_goals(status=GoalStatus.ACTIVE)

        profit_today = await self._aggregator.net_profit(DateRange.single_day(today))
        profit_month = await self._aggregator.month_to_date_profit(today)

        return MorningBriefing(
            title=greeting(self._user_name, now),
            today=today,
            overdue_receivables=overdue_in,
            due_today_receivables=due_in,
            overdue_payables=overdue_out,
            due_today_payables=due_out,
            goals=goals,
            waterfall=waterfall,
            profit_today=profit_today,
            profit_month=profit_month,
        )
