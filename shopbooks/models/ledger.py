"""
Ledger Models for Shopbooks

Each customer (and each supplier) has one or more account records. The
record's note field holds the ledger itself: one human-readable line per
event, e.g.

    [5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000
    [6 Jan 2024 18:05] Received: ₹400. Balance: ₹600

CRITICAL: The note is the source of truth. A record's amount and status
are derived by replaying its lines, and the "Balance:" figure written on
each line is an audit trail only. It is never read back as an input.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================

class LedgerBook(str, Enum):
    """Which side of the shop's credit a record belongs to."""
    RECEIVABLE = "receivable"  # Customer owes the shop
    PAYABLE = "payable"        # Shop owes a supplier


class LedgerStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class EntryKind(str, Enum):
    """
    What a ledger line records.

    DUE_ADDED and CREDIT_SALE raise the balance; PAYMENT_RECEIVED lowers it.
    """
    DUE_ADDED = "due_added"
    PAYMENT_RECEIVED = "payment_received"
    CREDIT_SALE = "credit_sale"

    @property
    def is_credit(self) -> bool:
        return self != EntryKind.PAYMENT_RECEIVED


class LedgerOperation(str, Enum):
    OPEN_ACCOUNT = "open_account"
    ADD_DUE = "add_due"
    RECORD_PAYMENT = "record_payment"
    EDIT_ENTRY = "edit_entry"
    DELETE_ENTRY = "delete_entry"
    BULK_DELETE = "bulk_delete"
    CLEAR_BALANCE = "clear_balance"


# =============================================================================
# RECORDS AND ENTRIES
# =============================================================================

class LedgerAccountRecord(BaseModel):
    """
    A stored payment reminder (receivable) or payable.

    revision is bumped by storage on every write and is used as the
    optimistic-concurrency token for multi-record updates.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    party_id: str = Field(..., min_length=1)
    party_name: Optional[str] = Field(default=None, max_length=200)
    book: LedgerBook = LedgerBook.RECEIVABLE
    amount: Decimal = Field(default=Decimal("0"), ge=0, description="Outstanding amount in INR")
    due_date: Optional[date] = None
    status: LedgerStatus = LedgerStatus.PENDING
    note: str = ""
    revision: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def lines(self) -> list[str]:
        return self.note.split("\n") if self.note else []

    @property
    def chain_sort_key(self) -> tuple:
        """Due date ascending, undated records last, then creation order."""
        return (self.due_date is None, self.due_date or date.min, self.created_at)

    def days_past_due(self, today: date) -> Optional[int]:
        """Positive when overdue, 0 when due today, negative when upcoming."""
        if self.due_date is None:
            return None
        return (today - self.due_date).days


class LedgerEntry(BaseModel):
    """
    One parsed ledger line.

    record_id / line_index locate the line inside its record's note so a
    mutation can rewrite or remove exactly that line.
    """

    record_id: str
    line_index: int = Field(..., ge=0)
    kind: EntryKind
    label: str
    amount: Decimal = Field(..., ge=0)
    recorded_balance: Optional[Decimal] = None
    date_text: str = ""
    time_text: str = ""
    entry_date: Optional[date] = None
    is_legacy: bool = False
    raw_line: str = ""

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.kind.is_credit else -self.amount

    @property
    def stamp(self) -> str:
        """Bracket contents: date plus time, without a trailing space."""
        return f"{self.date_text} {self.time_text}".strip()


class LedgerRecordUpdate(BaseModel):
    """
    A single record write inside an atomic batch.

    expected_revision must match the stored revision or the whole batch
    is rejected with ConflictError.
    """

    record_id: str
    book: LedgerBook = LedgerBook.RECEIVABLE
    expected_revision: int
    note: str
    amount: Decimal = Field(..., ge=0)
    status: LedgerStatus
    due_date: Optional[date] = None

    def apply_to(self, record: LedgerAccountRecord) -> LedgerAccountRecord:
        """Return the record as it looks after this update."""
        return record.model_copy(update={
            "note": self.note,
            "amount": self.amount,
            "status": self.status,
            "due_date": self.due_date if self.due_date is not None else record.due_date,
            "revision": record.revision + 1,
        })


# =============================================================================
# RESULTS
# =============================================================================

class BalanceAnomaly(BaseModel):
    """
    A record that claims money is owed but has no ledger lines to back it.

    Surfaced to the user; fixed only through an explicit clear-balance.
    """

    record_id: str
    party_id: str
    amount: Decimal
    message: str


class LedgerView(BaseModel):
    """What a party's ledger screen shows."""

    party_id: str
    book: LedgerBook
    records: list[LedgerAccountRecord] = Field(default_factory=list)
    entries: list[LedgerEntry] = Field(
        default_factory=list,
        description="The most recent entries, oldest first"
    )
    total_entries: int = 0
    window_offset: int = 0
    outstanding: Decimal = Decimal("0")
    next_due_date: Optional[date] = None
    anomalies: list[BalanceAnomaly] = Field(default_factory=list)

    @property
    def has_anomaly(self) -> bool:
        return bool(self.anomalies)


class LedgerMutationResult(BaseModel):
    """Outcome of an insert / edit / delete on a party's ledger."""

    operation: LedgerOperation
    party_id: str
    book: LedgerBook
    updated_records: list[LedgerAccountRecord] = Field(default_factory=list)
    balance: Decimal = Decimal("0")
    status: LedgerStatus = LedgerStatus.PENDING
    message: str = ""
