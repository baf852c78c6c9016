"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the default backend because:
1. The shop owner can open and read their books directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for one shop)
- No transactions. Ledger batches are revision-checked and then written
  with a single batch_update call; a concurrent writer landing between
  the check and the write is not detected
- Limited query capabilities (we filter in Python)

Reads and connection setup are retried with tenacity. The engine above
this layer never retries.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shopbooks.config import get_settings
from shopbooks.models.audit import AuditEvent, AuditEventType, AuditSeverity
from shopbooks.models.finance import DateRange, Expense, SaleTransaction
from shopbooks.models.goal import (
    Goal,
    GoalStatus,
    GoalType,
    MetricType,
    RecurrenceType,
)
from shopbooks.models.ledger import (
    LedgerAccountRecord,
    LedgerBook,
    LedgerRecordUpdate,
    LedgerStatus,
)
from shopbooks.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DataSourceError,
    FinancialDataSource,
    NotFoundError,
)


TRANSACTION_COLUMNS = [
    "id",
    "sale_date",
    "sell_price",
    "buy_price",
    "quantity",
    "customer_id",
    "product_id",
    "deleted_at",
]

EXPENSE_COLUMNS = [
    "id",
    "expense_date",
    "amount",
    "category",
    "description",
    "deleted_at",
]

GOAL_COLUMNS = [
    "id",
    "title",
    "description",
    "target_amount",
    "current_amount",
    "metric_type",
    "goal_type",
    "status",
    "start_tracking_date",
    "deadline",
    "product_id",
    "is_recurring",
    "recurrence_type",
    "created_at",
    "completed_at",
]

# Same layout for the receivable and payable sheets
LEDGER_COLUMNS = [
    "id",
    "party_id",
    "party_name",
    "amount",
    "due_date",
    "status",
    "note",
    "revision",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


_read_retry = retry(
    retry=retry_if_exception_type(ConnectionError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell_getter(row: list) -> Callable[[int], str]:
    """Index into a sheet row, treating missing trailing cells as empty."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _opt_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _opt_datetime(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_range(row_number: int, width: int) -> str:
    return f"A{row_number}:{rowcol_to_a1(row_number, width)}"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and creates missing worksheets with a header row.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def get_goals_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.goals_sheet_name, GOAL_COLUMNS, rows=200)

    def get_ledger_sheet(self, book: LedgerBook) -> gspread.Worksheet:
        title = (
            self._settings.receivables_sheet_name
            if book == LedgerBook.RECEIVABLE
            else self._settings.payables_sheet_name
        )
        return self._worksheet(title, LEDGER_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsDataSource(FinancialDataSource):
    """
    Google Sheets implementation of the financial data source.

    One row per entity. Ledger notes are stored verbatim in a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @_read_retry
    def _data_rows(self, sheet: gspread.Worksheet) -> list[list]:
        """All rows below the header, skipping blank ones."""
        try:
            return [row for row in sheet.get_all_values()[1:] if row and row[0]]
        except gspread.exceptions.APIError as e:
            raise ConnectionError(f"Google Sheets read failed: {e}")

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _row_to_transaction(self, row: list) -> SaleTransaction:
        get = _cell_getter(row)
        return SaleTransaction(
            id=get(0),
            sale_date=date.fromisoformat(get(1)),
            sell_price=Decimal(get(2, "0")),
            buy_price=Decimal(get(3, "0")),
            quantity=Decimal(get(4, "1")),
            customer_id=get(5) or None,
            product_id=get(6) or None,
            deleted_at=_opt_datetime(get(7)),
        )

    def _row_to_expense(self, row: list) -> Expense:
        get = _cell_getter(row)
        return Expense(
            id=get(0),
            expense_date=date.fromisoformat(get(1)),
            amount=Decimal(get(2, "0")),
            category=get(3) or None,
            description=get(4) or None,
            deleted_at=_opt_datetime(get(5)),
        )

    def _goal_to_row(self, goal: Goal) -> list:
        return [
            goal.id,
            goal.title,
            goal.description or "",
            str(goal.target_amount),
            str(goal.current_amount),
            goal.metric_type.value,
            goal.goal_type.value,
            goal.status.value,
            goal.start_tracking_date.isoformat(),
            goal.deadline.isoformat() if goal.deadline else "",
            goal.product_id or "",
            str(goal.is_recurring),
            goal.recurrence_type.value if goal.recurrence_type else "",
            goal.created_at.isoformat(),
            goal.completed_at.isoformat() if goal.completed_at else "",
        ]

    def _row_to_goal(self, row: list) -> Goal:
        get = _cell_getter(row)
        return Goal(
            id=get(0),
            title=get(1),
            description=get(2) or None,
            target_amount=Decimal(get(3)),
            current_amount=Decimal(get(4, "0")),
            metric_type=MetricType(get(5, MetricType.NET_PROFIT.value)),
            goal_type=GoalType(get(6, GoalType.AUTO.value)),
            status=GoalStatus(get(7, GoalStatus.ACTIVE.value)),
            start_tracking_date=date.fromisoformat(get(8)),
            deadline=_opt_date(get(9)),
            product_id=get(10) or None,
            is_recurring=get(11).lower() == "true",
            recurrence_type=RecurrenceType(get(12)) if get(12) else None,
            created_at=datetime.fromisoformat(get(13)) if get(13) else datetime.now(),
            completed_at=_opt_datetime(get(14)),
        )

    def _record_to_row(self, record: LedgerAccountRecord) -> list:
        return [
            record.id,
            record.party_id,
            record.party_name or "",
            str(record.amount),
            record.due_date.isoformat() if record.due_date else "",
            record.status.value,
            record.note,
            str(record.revision),
            record.created_at.isoformat(),
        ]

    def _row_to_record(self, row: list, book: LedgerBook) -> LedgerAccountRecord:
        get = _cell_getter(row)
        return LedgerAccountRecord(
            id=get(0),
            party_id=get(1),
            party_name=get(2) or None,
            book=book,
            amount=Decimal(get(3, "0")),
            due_date=_opt_date(get(4)),
            status=LedgerStatus(get(5, LedgerStatus.PENDING.value)),
            note=get(6),
            revision=int(get(7, "0")),
            created_at=datetime.fromisoformat(get(8)) if get(8) else datetime.now(),
        )

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    async def query_transactions(
        self,
        date_range: DateRange,
        product_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> list[SaleTransaction]:
        try:
            rows = self._data_rows(self._client.get_transactions_sheet())
            transactions = [self._row_to_transaction(row) for row in rows]
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Failed to read transactions: {e}")

        return [
            t for t in transactions
            if not t.is_deleted
            and date_range.contains(t.sale_date)
            and (product_id is None or t.product_id == product_id)
            and (customer_id is None or t.customer_id == customer_id)
        ]

    async def query_expenses(self, date_range: DateRange) -> list[Expense]:
        try:
            rows = self._data_rows(self._client.get_expenses_sheet())
            expenses = [self._row_to_expense(row) for row in rows]
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Failed to read expenses: {e}")

        return [
            e for e in expenses
            if not e.is_deleted and date_range.contains(e.expense_date)
        ]

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    def _find_goal_row(self, sheet: gspread.Worksheet, goal_id: str) -> tuple[int, list]:
        """(1-based sheet row number, row) for a goal id."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # Row 1 is header
            if row and row[0] == goal_id:
                return idx, row
        raise NotFoundError(f"Goal not found: {goal_id}")

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        try:
            for row in self._data_rows(self._client.get_goals_sheet()):
                if row[0] == goal_id:
                    return self._row_to_goal(row)
            return None
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Failed to get goal: {e}")

    async def list_goals(
        self,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        try:
            rows = self._data_rows(self._client.get_goals_sheet())
            goals = [self._row_to_goal(row) for row in rows]
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Failed to list goals: {e}")

        if status is not None:
            goals = [g for g in goals if g.status == status]
        goals.sort(key=lambda g: g.deadline_sort_key)
        return goals

    async def create_goal(self, goal: Goal) -> Goal:
        try:
            sheet = self._client.get_goals_sheet()
            sheet.append_row(self._goal_to_row(goal), value_input_option="RAW")
            return goal
        except Exception as e:
            raise DataSourceError(f"Failed to save goal: {e}")

    async def update_goal(self, goal_id: str, fields: dict[str, Any]) -> Goal:
        try:
            sheet = self._client.get_goals_sheet()
            row_number, row = self._find_goal_row(sheet, goal_id)
            existing = self._row_to_goal(row)
            updated = Goal.model_validate({**existing.model_dump(), **fields})
            sheet.update(
                range_name=_row_range(row_number, len(GOAL_COLUMNS)),
                values=[self._goal_to_row(updated)],
                value_input_option="RAW",
            )
            return updated
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Failed to update goal: {e}")

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def list_ledger_records(
        self,
        book: LedgerBook,
        party_id: Optional[str] = None,
        status: Optional[LedgerStatus] = None,
    ) -> list[LedgerAccountRecord]:
        try:
            rows = self._data_rows(self._client.get_ledger_sheet(book))
            records = [self._row_to_record(row, book) for row in rows]
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Failed to list ledger records: {e}")

        records = [
            r for r in records
            if (party_id is None or r.party_id == party_id)
            and (status is None or r.status == status)
        ]
        records.sort(key=lambda r: r.chain_sort_key)
        return records

    async def create_ledger_record(
        self,
        record: LedgerAccountRecord,
    ) -> LedgerAccountRecord:
        try:
            sheet = self._client.get_ledger_sheet(record.book)
            sheet.append_row(self._record_to_row(record), value_input_option="RAW")
            return record
        except Exception as e:
            raise DataSourceError(f"Failed to save ledger record: {e}")

    async def write_ledger_records(
        self,
        updates: list[LedgerRecordUpdate],
    ) -> list[LedgerAccountRecord]:
        if not updates:
            return []

        written: dict[str, LedgerAccountRecord] = {}
        for book in {u.book for u in updates}:
            book_updates = [u for u in updates if u.book == book]
            written.update(self._write_book(book, book_updates))

        return [written[u.record_id] for u in updates]

    def _write_book(
        self,
        book: LedgerBook,
        updates: list[LedgerRecordUpdate],
    ) -> dict[str, LedgerAccountRecord]:
        try:
            sheet = self._client.get_ledger_sheet(book)
            located: dict[str, tuple[int, LedgerAccountRecord]] = {}
            for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
                if row and row[0]:
                    located[row[0]] = (idx, self._row_to_record(row, book))
        except Exception as e:
            raise DataSourceError(f"Failed to read ledger records: {e}")

        # Check every revision before writing anything
        for update in updates:
            if update.record_id not in located:
                raise NotFoundError(f"Ledger record not found: {update.record_id}")
            _, stored = located[update.record_id]
            if stored.revision != update.expected_revision:
                raise ConflictError(
                    f"Ledger record {update.record_id} changed "
                    f"(expected revision {update.expected_revision}, "
                    f"found {stored.revision})"
                )

        written = {}
        batch = []
        for update in updates:
            row_number, stored = located[update.record_id]
            new_record = update.apply_to(stored)
            written[update.record_id] = new_record
            batch.append({
                "range": _row_range(row_number, len(LEDGER_COLUMNS)),
                "values": [self._record_to_row(new_record)],
            })

        try:
            sheet.batch_update(batch, value_input_option="RAW")
        except Exception as e:
            raise DataSourceError(f"Failed to write ledger records: {e}")

        return written


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._logger = structlog.get_logger()

    def _row_to_event(self, row: list) -> AuditEvent:
        get = _cell_getter(row)
        return AuditEvent(
            event_id=UUID(get(0)),
            timestamp=datetime.fromisoformat(get(1)),
            event_type=AuditEventType(get(2)),
            severity=AuditSeverity(get(3)),
            entity_type=get(4) or None,
            entity_id=get(5) or None,
            correlation_id=UUID(get(6)) if get(6) else None,
            description=get(7),
            details=json.loads(get(8)) if get(8) else {},
            error_message=get(9) or None,
            is_user_action=get(10).lower() == "true",
        )

    def _events_where(self, predicate: Callable[[list], bool]) -> list[AuditEvent]:
        try:
            rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise DataSourceError(f"Failed to get audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, json.JSONDecodeError):
                continue  # Skip malformed rows
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            self._logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = self._events_where(
            lambda row: len(row) > 6 and row[6] == str(correlation_id)
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = self._events_where(
            lambda row: len(row) > 5 and row[4] == entity_type and row[5] == entity_id
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._events_where(lambda row: True)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
