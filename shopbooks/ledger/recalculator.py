"""
Balance Recalculator

Pure replay of ledger lines. Given a record's lines (optionally with some
removed or an amount replaced), recompute the running balance from the
first entry and rewrite every canonical line with its new "Balance:".

Two scopes:
- replay_record: one record, running balance starts at 0
  (edit and single delete)
- replay_chain: all of a party's records merged in chain order, one
  running balance carried across record boundaries (bulk delete)

Legacy "Credit Sale on ..." lines add their amount as credit but are
never rewritten. Unrecognised lines pass through untouched.

Nothing here does I/O; the ledger service reads, calls these, and writes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from shopbooks.errors import EntryNotFoundError
from shopbooks.ledger.parser import format_entry_line, parse_note
from shopbooks.models.ledger import (
    LedgerAccountRecord,
    LedgerEntry,
    LedgerRecordUpdate,
    LedgerStatus,
)


class ReplayResult(BaseModel):
    """A record's rewritten lines and the balance after its last line."""

    record: LedgerAccountRecord
    lines: list[str] = Field(default_factory=list)
    balance: Decimal = Decimal("0")
    entry_count: int = 0

    @property
    def note(self) -> str:
        return "\n".join(self.lines)

    @property
    def amount(self) -> Decimal:
        return max(self.balance, Decimal("0"))

    @property
    def status(self) -> LedgerStatus:
        return LedgerStatus.PAID if self.balance <= 0 else LedgerStatus.PENDING

    @property
    def changed(self) -> bool:
        return (
            self.note != self.record.note
            or self.amount != self.record.amount
            or self.status != self.record.status
        )

    def to_update(self, due_date: Optional[date] = None) -> LedgerRecordUpdate:
        return LedgerRecordUpdate(
            record_id=self.record.id,
            book=self.record.book,
            expected_revision=self.record.revision,
            note=self.note,
            amount=self.amount,
            status=self.status,
            due_date=due_date,
        )


Line = tuple[str, Optional[LedgerEntry]]


def pair_lines(record: LedgerAccountRecord, now: datetime) -> list[Line]:
    """Each note line next to its parsed entry (None for non-entries)."""
    entries = {e.line_index: e for e in parse_note(record.note, record.id, now)}
    return [(line, entries.get(idx)) for idx, line in enumerate(record.lines)]


def replay_lines(
    lines: Iterable[Line],
    opening_balance: Decimal = Decimal("0"),
) -> tuple[list[str], Decimal, int]:
    """
    Walk lines in order, carrying the running balance.

    Returns (rewritten lines, closing balance, number of entries).
    The running balance is not clamped; only the printed figure is.
    """
    balance = opening_balance
    out = []
    count = 0
    for text, entry in lines:
        if entry is None:
            out.append(text)
            continue
        count += 1
        balance += entry.signed_amount
        out.append(text if entry.is_legacy else format_entry_line(entry, balance))
    return out, balance, count


def replay_record(
    record: LedgerAccountRecord,
    now: datetime,
    removed_lines: Optional[set[int]] = None,
    amount_overrides: Optional[dict[int, Decimal]] = None,
) -> ReplayResult:
    """
    Replay one record from zero.

    Args:
        removed_lines: Line indices to drop before replaying
        amount_overrides: line_index -> new amount for an edited entry
    """
    removed_lines = removed_lines or set()
    amount_overrides = amount_overrides or {}

    kept: list[Line] = []
    for idx, (text, entry) in enumerate(pair_lines(record, now)):
        if idx in removed_lines:
            continue
        if entry is not None and idx in amount_overrides:
            entry = entry.model_copy(update={"amount": amount_overrides[idx]})
        kept.append((text, entry))

    lines, balance, count = replay_lines(kept)
    return ReplayResult(record=record, lines=lines, balance=balance, entry_count=count)


def replay_chain(
    records: list[LedgerAccountRecord],
    now: datetime,
    removed: Optional[dict[str, set[int]]] = None,
) -> list[ReplayResult]:
    """
    Replay every record of a party with one running balance.

    Each record's balance is the chain's running balance after that
    record's last entry. A record that has no entries left keeps its
    stored figures (nothing in its note can justify a new value).
    """
    removed = removed or {}
    running = Decimal("0")
    results = []

    for record in records:
        dropped = removed.get(record.id, set())
        kept = [
            pair for idx, pair in enumerate(pair_lines(record, now))
            if idx not in dropped
        ]
        lines, closing, count = replay_lines(kept, opening_balance=running)

        if count == 0 and not dropped:
            results.append(ReplayResult(
                record=record,
                lines=record.lines,
                balance=record.amount if record.status == LedgerStatus.PENDING else Decimal("0"),
                entry_count=0,
            ))
            continue

        running = closing
        results.append(ReplayResult(record=record, lines=lines, balance=closing, entry_count=count))

    return results


def window_offset(total_entries: int, window: int) -> int:
    """Index of the first entry shown when only the last `window` are visible."""
    return max(0, total_entries - window)


def true_index(visible_index: int, total_entries: int, window: int) -> int:
    """
    Map an index in the visible window back to the full chain.

    Raises:
        EntryNotFoundError: If the index falls outside the window
    """
    visible_count = min(total_entries, window)
    if visible_index < 0 or visible_index >= visible_count:
        raise EntryNotFoundError(
            f"No ledger entry at position {visible_index} "
            f"({visible_count} entries shown)"
        )
    return window_offset(total_entries, window) + visible_index
