"""
Abstract Storage Interface

DESIGN DECISION: The engine talks to an abstract "financial data source".
This allows us to:
1. Keep Google Sheets as the default backend
2. Use in-memory storage for testing
3. Swap in a real database later without touching business logic

CRITICAL: Ledger writes go through write_ledger_records, which applies a
batch of record updates all-or-nothing and checks each record's revision.
A stale revision raises ConflictError (retriable by the caller after a
fresh read). The engine itself never retries.
"""

from abc import ABC, abstractmethod
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


class SalesDataSource(ABC):
    """
    Read access to sales and expenses.

    Implementations must exclude soft-deleted rows.
    """

    @abstractmethod
    async def query_transactions(
        self,
        date_range: DateRange,
        product_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> list[SaleTransaction]:
        """
        Sales whose date falls inside date_range (inclusive).

        Args:
            date_range: Inclusive date window
            product_id: Only sales of this product
            customer_id: Only sales to this customer

        Returns:
            Matching, non-deleted transactions

        Raises:
            DataSourceError: If the read fails
        """
        pass

    @abstractmethod
    async def query_expenses(self, date_range: DateRange) -> list[Expense]:
        """
        Expenses dated inside date_range (inclusive), non-deleted.

        Raises:
            DataSourceError: If the read fails
        """
        pass


class GoalStorageInterface(ABC):
    """Goal persistence."""

    @abstractmethod
    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        """
        Retrieve a goal by id.

        Returns:
            The goal if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_goals(
        self,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        """
        List goals, optionally filtered by status.

        Returns:
            Goals ordered by deadline ascending (no deadline last)
        """
        pass

    @abstractmethod
    async def create_goal(self, goal: Goal) -> Goal:
        """
        Persist a new goal.

        Raises:
            DataSourceError: If save fails
        """
        pass

    @abstractmethod
    async def update_goal(self, goal_id: str, fields: dict[str, Any]) -> Goal:
        """
        Update some fields of a goal.

        Args:
            goal_id: The goal to update
            fields: Field name -> new value

        Returns:
            The goal after the update

        Raises:
            NotFoundError: If the goal doesn't exist
            DataSourceError: If the write fails
        """
        pass


class LedgerStorageInterface(ABC):
    """Ledger account record persistence (receivables and payables)."""

    @abstractmethod
    async def list_ledger_records(
        self,
        book: LedgerBook,
        party_id: Optional[str] = None,
        status: Optional[LedgerStatus] = None,
    ) -> list[LedgerAccountRecord]:
        """
        List ledger records of one book.

        Returns:
            Records ordered by (due_date, created_at), undated records last
        """
        pass

    @abstractmethod
    async def create_ledger_record(
        self,
        record: LedgerAccountRecord,
    ) -> LedgerAccountRecord:
        """
        Persist a new ledger record.

        Raises:
            DataSourceError: If save fails
        """
        pass

    @abstractmethod
    async def write_ledger_records(
        self,
        updates: list[LedgerRecordUpdate],
    ) -> list[LedgerAccountRecord]:
        """
        Apply a batch of record updates atomically.

        Every update carries the revision the caller read. If any stored
        revision differs, nothing is written.

        Returns:
            The updated records, in the order of updates

        Raises:
            ConflictError: If any record changed since it was read
            NotFoundError: If any record doesn't exist
            DataSourceError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events for one entity (goal, party, record), chronological."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class FinancialDataSource(SalesDataSource, GoalStorageInterface, LedgerStorageInterface):
    """Everything the goal engine and ledger recalculator read and write."""
    pass


class DataSourceError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(DataSourceError):
    """Entity not found in storage."""
    pass


class ConflictError(DataSourceError):
    """
    A record changed between read and write.

    Retriable: re-read the chain and re-run the mutation.
    """
    pass


class ConnectionError(DataSourceError):
    """Could not connect to storage backend."""
    pass
