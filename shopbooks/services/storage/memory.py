"""
In-Memory Storage Implementation

A complete FinancialDataSource and AuditStorageInterface kept in dicts.
Used by the test suite and for running the engine without credentials.

Writes copy models in and out so callers can't mutate stored state by
holding on to a returned object.
"""

from typing import Any, Optional
from uuid import UUID

from shopbooks.models.audit import AuditEvent
from shopbooks.models.finance import DateRange, Expense, SaleTransaction
from shopbooks.models.goal import Goal, GoalStatus
from shopbooks.models.ledger import (
    LedgerAccountRecord,
    LedgerBook,
    LedgerRecordUpdate,
    LedgerStatus,
)
from shopbooks.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DataSourceError,
    FinancialDataSource,
    NotFoundError,
)


class InMemoryDataSource(FinancialDataSource):
    """
    Dict-backed data source.

    Ledger batches are validated in full (existence and revision of every
    record) before any record is touched, so a failed batch leaves the
    store exactly as it was.
    """

    def __init__(
        self,
        transactions: Optional[list[SaleTransaction]] = None,
        expenses: Optional[list[Expense]] = None,
        goals: Optional[list[Goal]] = None,
        ledger_records: Optional[list[LedgerAccountRecord]] = None,
    ):
        self._transactions: list[SaleTransaction] = list(transactions or [])
        self._expenses: list[Expense] = list(expenses or [])
        self._goals: dict[str, Goal] = {g.id: g.model_copy() for g in goals or []}
        self._records: dict[str, LedgerAccountRecord] = {
            r.id: r.model_copy() for r in ledger_records or []
        }
        self.read_count = 0
        self.write_count = 0

    # -------------------------------------------------------------------------
    # Seeding helpers
    # -------------------------------------------------------------------------

    def add_transaction(self, transaction: SaleTransaction) -> None:
        self._transactions.append(transaction)

    def add_expense(self, expense: Expense) -> None:
        self._expenses.append(expense)

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    async def query_transactions(
        self,
        date_range: DateRange,
        product_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> list[SaleTransaction]:
        self.read_count += 1
        return [
            t for t in self._transactions
            if not t.is_deleted
            and date_range.contains(t.sale_date)
            and (product_id is None or t.product_id == product_id)
            and (customer_id is None or t.customer_id == customer_id)
        ]

    async def query_expenses(self, date_range: DateRange) -> list[Expense]:
        self.read_count += 1
        return [
            e for e in self._expenses
            if not e.is_deleted and date_range.contains(e.expense_date)
        ]

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        self.read_count += 1
        goal = self._goals.get(goal_id)
        return goal.model_copy() if goal else None

    async def list_goals(
        self,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        self.read_count += 1
        goals = [
            g.model_copy() for g in self._goals.values()
            if status is None or g.status == status
        ]
        goals.sort(key=lambda g: g.deadline_sort_key)
        return goals

    async def create_goal(self, goal: Goal) -> Goal:
        if goal.id in self._goals:
            raise DataSourceError(f"Goal already exists: {goal.id}")
        self.write_count += 1
        self._goals[goal.id] = goal.model_copy()
        return goal.model_copy()

    async def update_goal(self, goal_id: str, fields: dict[str, Any]) -> Goal:
        existing = self._goals.get(goal_id)
        if existing is None:
            raise NotFoundError(f"Goal not found: {goal_id}")

        # Re-validate so bad field values fail here, not on the next read
        updated = Goal.model_validate({**existing.model_dump(), **fields})
        self.write_count += 1
        self._goals[goal_id] = updated
        return updated.model_copy()

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def list_ledger_records(
        self,
        book: LedgerBook,
        party_id: Optional[str] = None,
        status: Optional[LedgerStatus] = None,
    ) -> list[LedgerAccountRecord]:
        self.read_count += 1
        records = [
            r.model_copy() for r in self._records.values()
            if r.book == book
            and (party_id is None or r.party_id == party_id)
            and (status is None or r.status == status)
        ]
        records.sort(key=lambda r: r.chain_sort_key)
        return records

    async def create_ledger_record(
        self,
        record: LedgerAccountRecord,
    ) -> LedgerAccountRecord:
        if record.id in self._records:
            raise DataSourceError(f"Ledger record already exists: {record.id}")
        self.write_count += 1
        self._records[record.id] = record.model_copy()
        return record.model_copy()

    async def write_ledger_records(
        self,
        updates: list[LedgerRecordUpdate],
    ) -> list[LedgerAccountRecord]:
        # Validate the whole batch first
        for update in updates:
            stored = self._records.get(update.record_id)
            if stored is None:
                raise NotFoundError(f"Ledger record not found: {update.record_id}")
            if stored.revision != update.expected_revision:
                raise ConflictError(
                    f"Ledger record {update.record_id} changed "
                    f"(expected revision {update.expected_revision}, "
                    f"found {stored.revision})"
                )

        written = []
        for update in updates:
            new_record = update.apply_to(self._records[update.record_id])
            self._records[update.record_id] = new_record
            written.append(new_record.model_copy())

        if updates:
            self.write_count += 1
        return written

    def get_record(self, record_id: str) -> LedgerAccountRecord:
        """Synchronous peek, for tests and debugging."""
        return self._records[record_id].model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.correlation_id == correlation_id),
            key=lambda e: e.timestamp,
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return sorted(
            (
                e for e in self.events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ),
            key=lambda e: e.timestamp,
        )

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
