"""
Ledger Mutation Service

Insert, edit, delete, bulk delete and clear-balance on a party's ledger.

A party's chain is its pending records of one book (receivable or
payable), ordered by due date. The first record is the primary one; new
dues and payments are appended to it.

CRITICAL: Every mutation ends with note, amount and status in agreement
for every record it touches, or it writes nothing at all:
- The whole mutation is validated (index mapping, editability, amounts)
  before any write.
- All record writes of one mutation go out as one batch with each record's
  expected revision; storage applies all of them or raises ConflictError.

Edit rules: only the most recent entry of the whole chain may be edited.
Older entries are history. They can be deleted, not rewritten.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

import structlog

from shopbooks.audit.logger import AuditLogger
from shopbooks.errors import (
    EntryNotEditableError,
    EntryNotFoundError,
    InvalidAmountError,
    NoOpenAccountError,
)
from shopbooks.ledger.parser import (
    CLEARED_LINE,
    detect_anomalies,
    format_amount,
    new_entry_line,
    parse_chain,
)
from shopbooks.ledger.recalculator import (
    ReplayResult,
    replay_chain,
    replay_record,
    true_index,
    window_offset,
)
from shopbooks.models.audit import AuditEventType
from shopbooks.models.ledger import (
    EntryKind,
    LedgerAccountRecord,
    LedgerBook,
    LedgerEntry,
    LedgerMutationResult,
    LedgerOperation,
    LedgerRecordUpdate,
    LedgerStatus,
    LedgerView,
)
from shopbooks.services.storage.interface import ConflictError, LedgerStorageInterface


class LedgerService:
    """
    Async ledger operations on top of a LedgerStorageInterface.

    Holds no state between calls: every operation re-reads the chain.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        visible_window: int = 20,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._window = visible_window
        self._logger = structlog.get_logger()

    # =========================================================================
    # READS
    # =========================================================================

    async def load_chain(
        self,
        party_id: str,
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> list[LedgerAccountRecord]:
        """The party's pending records, primary first."""
        return await self._storage.list_ledger_records(
            book=book,
            party_id=party_id,
            status=LedgerStatus.PENDING,
        )

    async def get_ledger(
        self,
        party_id: str,
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> LedgerView:
        """
        The party's ledger as the detail screen shows it.

        Entries are the last `visible_window` of the merged chain. Records
        that carry a balance but no entries are reported as anomalies.

        Outstanding is the closing balance of one replay over the whole
        chain, plus whatever the anomalous records claim. Stored amounts
        are not added up: after a bulk delete each record holds the running
        balance up to itself.
        """
        now = self._clock()
        records = await self.load_chain(party_id, book)
        entries = parse_chain(records, now)
        offset = window_offset(len(entries), self._window)
        anomalies = detect_anomalies(records, now)

        replayed = [r for r in replay_chain(records, now) if r.entry_count > 0]
        outstanding = replayed[-1].amount if replayed else Decimal("0")
        outstanding += sum((a.amount for a in anomalies), Decimal("0"))

        for anomaly in anomalies:
            self._logger.warning(
                "ledger_anomaly_detected",
                party_id=party_id,
                record_id=anomaly.record_id,
                amount=str(anomaly.amount),
            )

        return LedgerView(
            party_id=party_id,
            book=book,
            records=records,
            entries=entries[offset:],
            total_entries=len(entries),
            window_offset=offset,
            outstanding=outstanding,
            next_due_date=records[0].due_date if records else None,
            anomalies=anomalies,
        )

    # =========================================================================
    # INSERTS
    # =========================================================================

    async def open_account(
        self,
        party_id: str,
        amount: Decimal,
        due_date: Optional[date] = None,
        book: LedgerBook = LedgerBook.RECEIVABLE,
        party_name: Optional[str] = None,
    ) -> LedgerMutationResult:
        """Start a new pending record whose first line is the opening due."""
        _require_positive(amount)
        line = new_entry_line(book, EntryKind.DUE_ADDED, amount, amount, self._clock())
        record = await self._storage.create_ledger_record(LedgerAccountRecord(
            party_id=party_id,
            party_name=party_name,
            book=book,
            amount=amount,
            due_date=due_date,
            status=LedgerStatus.PENDING,
            note=line,
        ))

        await self._audit(
            AuditEventType.LEDGER_ACCOUNT_OPENED,
            party_id,
            [record],
            record.amount,
            f"Account opened with {_rupees(amount)}",
        )
        return LedgerMutationResult(
            operation=LedgerOperation.OPEN_ACCOUNT,
            party_id=party_id,
            book=book,
            updated_records=[record],
            balance=record.amount,
            status=record.status,
            message=f"Opened account with {_rupees(amount)} due",
        )

    async def record_due(
        self,
        party_id: str,
        amount: Decimal,
        book: LedgerBook = LedgerBook.RECEIVABLE,
        due_date: Optional[date] = None,
    ) -> LedgerMutationResult:
        """Add a new due to the primary record (optionally moving its due date)."""
        return await self._append(
            party_id, book, EntryKind.DUE_ADDED, amount, due_date,
            LedgerOperation.ADD_DUE,
        )

    async def record_payment(
        self,
        party_id: str,
        amount: Decimal,
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> LedgerMutationResult:
        """Record money received (or, for payables, paid out)."""
        return await self._append(
            party_id, book, EntryKind.PAYMENT_RECEIVED, amount, None,
            LedgerOperation.RECORD_PAYMENT,
        )

    async def _append(
        self,
        party_id: str,
        book: LedgerBook,
        kind: EntryKind,
        amount: Decimal,
        due_date: Optional[date],
        operation: LedgerOperation,
    ) -> LedgerMutationResult:
        _require_positive(amount)
        records = await self.load_chain(party_id, book)
        if not records:
            raise NoOpenAccountError(f"No pending account for party {party_id}")

        primary = records[0]
        balance = primary.amount + amount if kind.is_credit else primary.amount - amount
        line = new_entry_line(book, kind, amount, balance, self._clock())
        note = f"{primary.note}\n{line}" if primary.note else line

        update = LedgerRecordUpdate(
            record_id=primary.id,
            book=book,
            expected_revision=primary.revision,
            note=note,
            amount=max(balance, Decimal("0")),
            status=LedgerStatus.PAID if balance <= 0 else LedgerStatus.PENDING,
            due_date=due_date,
        )
        written = await self._write(party_id, operation, [update])

        await self._audit(
            AuditEventType.LEDGER_ENTRY_ADDED,
            party_id,
            written,
            update.amount,
            f"{'Due' if kind.is_credit else 'Payment'} of {_rupees(amount)} recorded",
            {"kind": kind.value, "amount": str(amount)},
        )
        return _result(operation, party_id, book, written, update.amount, update.status)

    # =========================================================================
    # EDIT / DELETE
    # =========================================================================

    async def edit_entry(
        self,
        party_id: str,
        visible_index: int,
        new_amount: Decimal,
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> LedgerMutationResult:
        """
        Change the amount of the chain's most recent entry.

        The owning record is replayed from its first line and is the only
        record written.

        Raises:
            EntryNotFoundError: visible_index is outside the window
            EntryNotEditableError: the entry is not the latest, or is legacy
            InvalidAmountError: new_amount is not positive
        """
        _require_positive(new_amount)
        now = self._clock()
        records = await self.load_chain(party_id, book)
        entries = parse_chain(records, now)
        index = true_index(visible_index, len(entries), self._window)

        if index != len(entries) - 1:
            raise EntryNotEditableError("Only the most recent entry can be edited")
        entry = entries[index]
        if entry.is_legacy:
            raise EntryNotEditableError("Old-format credit sale lines can't be edited")

        record = _owner(records, entry)
        replay = replay_record(record, now, amount_overrides={entry.line_index: new_amount})
        written = await self._write(party_id, LedgerOperation.EDIT_ENTRY, [replay.to_update()])

        await self._audit(
            AuditEventType.LEDGER_ENTRY_EDITED,
            party_id,
            written,
            replay.amount,
            f"{entry.label} changed {_rupees(entry.amount)} -> {_rupees(new_amount)}",
            {"previous_amount": str(entry.amount), "new_amount": str(new_amount)},
        )
        return _result(
            LedgerOperation.EDIT_ENTRY, party_id, book, written, replay.amount, replay.status,
        )

    async def delete_entry(
        self,
        party_id: str,
        visible_index: int,
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> LedgerMutationResult:
        """Remove one entry and replay its owning record."""
        now = self._clock()
        records = await self.load_chain(party_id, book)
        entries = parse_chain(records, now)
        entry = entries[true_index(visible_index, len(entries), self._window)]

        record = _owner(records, entry)
        replay = replay_record(record, now, removed_lines={entry.line_index})
        written = await self._write(party_id, LedgerOperation.DELETE_ENTRY, [replay.to_update()])

        await self._audit(
            AuditEventType.LEDGER_ENTRY_DELETED,
            party_id,
            written,
            replay.amount,
            f"{entry.label} of {_rupees(entry.amount)} deleted",
            {"deleted_line": entry.raw_line},
        )
        return _result(
            LedgerOperation.DELETE_ENTRY, party_id, book, written, replay.amount, replay.status,
        )

    async def delete_entries(
        self,
        party_id: str,
        visible_indices: list[int],
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> LedgerMutationResult:
        """
        Remove several entries, then replay the whole chain as one sequence.

        Only records whose note, amount or status changed are written.
        """
        if not visible_indices:
            raise EntryNotFoundError("No entries selected")

        now = self._clock()
        records = await self.load_chain(party_id, book)
        entries = parse_chain(records, now)

        removed: dict[str, set[int]] = {}
        deleted: list[LedgerEntry] = []
        for visible in sorted(set(visible_indices)):
            entry = entries[true_index(visible, len(entries), self._window)]
            removed.setdefault(entry.record_id, set()).add(entry.line_index)
            deleted.append(entry)

        results = replay_chain(records, now, removed)
        changed = [r for r in results if r.changed]
        written = await self._write(
            party_id,
            LedgerOperation.BULK_DELETE,
            [r.to_update() for r in changed],
        )

        final = _closing(results)
        await self._audit(
            AuditEventType.LEDGER_ENTRIES_BULK_DELETED,
            party_id,
            written,
            final.amount if final else Decimal("0"),
            f"{len(deleted)} entries deleted",
            {"deleted_lines": [e.raw_line for e in deleted]},
        )
        return _result(
            LedgerOperation.BULK_DELETE,
            party_id,
            book,
            written,
            final.amount if final else Decimal("0"),
            final.status if final else LedgerStatus.PAID,
        )

    # =========================================================================
    # RECOVERY
    # =========================================================================

    async def clear_balance(
        self,
        party_id: str,
        book: LedgerBook = LedgerBook.RECEIVABLE,
    ) -> LedgerMutationResult:
        """
        Zero every pending record of the party and mark it paid.

        The explicit recovery for an anomalous balance. A "[Cleared]" line
        is appended to each note so the history shows what happened.
        """
        records = await self.load_chain(party_id, book)
        if not records:
            raise NoOpenAccountError(f"No pending account for party {party_id}")

        updates = [
            LedgerRecordUpdate(
                record_id=r.id,
                book=book,
                expected_revision=r.revision,
                note=f"{r.note}\n{CLEARED_LINE}" if r.note else CLEARED_LINE,
                amount=Decimal("0"),
                status=LedgerStatus.PAID,
            )
            for r in records
        ]
        cleared = sum((r.amount for r in records), Decimal("0"))
        anomalies = detect_anomalies(records, self._clock())
        written = await self._write(party_id, LedgerOperation.CLEAR_BALANCE, updates)

        # The anomalies this clear resolved go on the permanent record once
        if self._audit_logger:
            for anomaly in anomalies:
                await self._audit_logger.log_ledger_anomaly(
                    record_id=anomaly.record_id,
                    party_id=party_id,
                    amount=anomaly.amount,
                )
        await self._audit(
            AuditEventType.LEDGER_BALANCE_CLEARED,
            party_id,
            written,
            Decimal("0"),
            f"Balance of {_rupees(cleared)} cleared manually",
            {"cleared_amount": str(cleared)},
        )
        return _result(
            LedgerOperation.CLEAR_BALANCE, party_id, book, written, Decimal("0"), LedgerStatus.PAID,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _write(
        self,
        party_id: str,
        operation: LedgerOperation,
        updates: list[LedgerRecordUpdate],
    ) -> list[LedgerAccountRecord]:
        if not updates:
            return []
        try:
            return await self._storage.write_ledger_records(updates)
        except ConflictError as e:
            self._logger.warning(
                "ledger_write_conflict",
                party_id=party_id,
                operation=operation.value,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_ledger_conflict(
                    party_id=party_id,
                    operation=operation.value,
                    error_message=str(e),
                )
            raise

    async def _audit(
        self,
        event_type: AuditEventType,
        party_id: str,
        records: list[LedgerAccountRecord],
        balance: Decimal,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_ledger_mutation(
                event_type=event_type,
                party_id=party_id,
                record_ids=[r.id for r in records],
                balance=balance,
                description=description,
                details=details,
            )


def _require_positive(amount: Decimal) -> None:
    if amount <= 0:
        raise InvalidAmountError(f"Amount must be greater than zero, got {amount}")


def _rupees(value: Decimal) -> str:
    return f"₹{format_amount(value)}"


def _owner(records: list[LedgerAccountRecord], entry: LedgerEntry) -> LedgerAccountRecord:
    for record in records:
        if record.id == entry.record_id:
            return record
    raise EntryNotFoundError(f"Ledger record {entry.record_id} is no longer in the chain")


def _closing(results: list[ReplayResult]) -> Optional[ReplayResult]:
    """The last record that has entries: its balance closes the chain."""
    with_entries = [r for r in results if r.entry_count > 0]
    if with_entries:
        return with_entries[-1]
    return results[-1] if results else None


def _result(
    operation: LedgerOperation,
    party_id: str,
    book: LedgerBook,
    written: list[LedgerAccountRecord],
    balance: Decimal,
    status: LedgerStatus,
) -> LedgerMutationResult:
    if status == LedgerStatus.PAID:
        message = "Balance settled. Account marked paid."
    else:
        message = f"Balance now {_rupees(balance)}"
    return LedgerMutationResult(
        operation=operation,
        party_id=party_id,
        book=book,
        updated_records=written,
        balance=balance,
        status=status,
        message=message,
    )
