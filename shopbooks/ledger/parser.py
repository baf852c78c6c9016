"""
Ledger Entry Parser

Reads the free-text ledger kept in a record's note field.

Canonical line (what we write):
    [5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000

Older canonical lines have no year in the bracket ("[5 Jan 10:30 am]");
the year is inferred from today. The oldest format has no bracket at all:
    Credit Sale on 5 Jan 2024. Total Bill: ₹1,500. Paid Now: ₹500.

DESIGN DECISION: Parsing is lossy on purpose. Lines that match neither
format ("[Cleared] Balance manually cleared.", hand-typed remarks) are
skipped for balances and kept verbatim when the note is rewritten.
"""

import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, Optional

from shopbooks.models.ledger import (
    BalanceAnomaly,
    EntryKind,
    LedgerAccountRecord,
    LedgerBook,
    LedgerEntry,
)


CURRENCY = "₹"

# Label -> kind. Receivable and payable labels both parse on either book.
LABEL_KINDS: dict[str, EntryKind] = {
    "New Due Added": EntryKind.DUE_ADDED,
    "New Payable Added": EntryKind.DUE_ADDED,
    "Received": EntryKind.PAYMENT_RECEIVED,
    "Payment Made": EntryKind.PAYMENT_RECEIVED,
    "Paid": EntryKind.PAYMENT_RECEIVED,
    "Credit Sale": EntryKind.CREDIT_SALE,
    "Credit Purchase": EntryKind.CREDIT_SALE,
    "Linked from Sale": EntryKind.CREDIT_SALE,
}

# Labels used when we write new lines
BOOK_LABELS: dict[LedgerBook, dict[EntryKind, str]] = {
    LedgerBook.RECEIVABLE: {
        EntryKind.DUE_ADDED: "New Due Added",
        EntryKind.PAYMENT_RECEIVED: "Received",
        EntryKind.CREDIT_SALE: "Credit Sale",
    },
    LedgerBook.PAYABLE: {
        EntryKind.DUE_ADDED: "New Payable Added",
        EntryKind.PAYMENT_RECEIVED: "Payment Made",
        EntryKind.CREDIT_SALE: "Credit Purchase",
    },
}

CLEARED_LINE = "[Cleared] Balance manually cleared."

_AMOUNT = r"(?P<{name}>\d[\d,]*(?:\.\d+)?)"

_LABEL_PATTERN = "|".join(
    re.escape(label) for label in sorted(LABEL_KINDS, key=len, reverse=True)
)

CANONICAL_RE = re.compile(
    r"^\s*\[(?P<stamp>[^\]]*)\]\s*(?P<label>" + _LABEL_PATTERN + r"):\s*"
    + CURRENCY + r"\s*" + _AMOUNT.format(name="amount")
)
BALANCE_RE = re.compile(r"Balance:\s*" + CURRENCY + r"\s*" + _AMOUNT.format(name="balance"))
LEGACY_RE = re.compile(
    r"Credit Sale on (?P<date>.+?)\.\s*Total Bill:\s*" + CURRENCY + r"\s*"
    + _AMOUNT.format(name="total")
)
LEGACY_PAID_RE = re.compile(r"Paid Now:\s*" + CURRENCY + r"\s*" + _AMOUNT.format(name="paid"))

_YEAR_RE = re.compile(r"^\d{4}$")
_MERIDIEM_RE = re.compile(r"\s*(am|pm)", re.IGNORECASE)


# =============================================================================
# AMOUNTS AND STAMPS
# =============================================================================

def parse_amount(text: str) -> Decimal:
    """'1,234.50' -> Decimal('1234.50')"""
    return Decimal(text.replace(",", ""))


def format_amount(value: Decimal) -> str:
    """Thousands separators; paise only when there are any."""
    if value == value.to_integral_value():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_stamp(moment: datetime) -> str:
    """Bracket stamp for a new line: '5 Jan 2024 10:30' (24-hour)."""
    return f"{moment.day} {moment.strftime('%b')} {moment.year} {moment.strftime('%H:%M')}"


def _calendar_date(day: str, month: str, year: int) -> Optional[date]:
    for fmt in ("%d %b %Y", "%d %B %Y"):
        try:
            return datetime.strptime(f"{day} {month} {year}", fmt).date()
        except ValueError:
            continue
    return None


def infer_year(day: str, month: str, now: datetime) -> int:
    """
    Year for a 'day month' stamp written without one.

    This year, unless that date (at midnight) is still in the future,
    in which case last year.
    """
    candidate = _calendar_date(day, month, now.year)
    if candidate and datetime.combine(candidate, time.min) > now:
        return now.year - 1
    return now.year


def parse_stamp(stamp: str, now: datetime) -> tuple[str, str, Optional[date]]:
    """
    Split bracket contents into (date_text, time_text, calendar date).

    "5 Jan 2024 10:30"  -> year given
    "5 Jan 10:30 am"    -> year inferred, am/pm dropped
    "5 Jan"             -> year inferred, no time
    anything else       -> first token as the date, nothing parsed
    """
    tokens = stamp.split()

    if len(tokens) == 2:
        day, month = tokens
        year = infer_year(day, month, now)
        time_text = ""
    elif len(tokens) >= 3 and _YEAR_RE.match(tokens[2]):
        day, month = tokens[0], tokens[1]
        year = int(tokens[2])
        time_text = " ".join(tokens[3:])
    elif len(tokens) >= 3:
        day, month = tokens[0], tokens[1]
        year = infer_year(day, month, now)
        time_text = " ".join(tokens[2:])
    else:
        return (tokens[0] if tokens else ""), "", None

    time_text = _MERIDIEM_RE.sub("", time_text).strip()
    return f"{day} {month} {year}", time_text, _calendar_date(day, month, year)


# =============================================================================
# LINES
# =============================================================================

def parse_line(
    line: str,
    record_id: str,
    line_index: int,
    now: datetime,
) -> Optional[LedgerEntry]:
    """Parse one note line, or None if it isn't a ledger entry."""
    match = CANONICAL_RE.match(line)
    if match:
        date_text, time_text, entry_date = parse_stamp(match.group("stamp"), now)
        balance = BALANCE_RE.search(line, match.end())
        label = match.group("label")
        return LedgerEntry(
            record_id=record_id,
            line_index=line_index,
            kind=LABEL_KINDS[label],
            label=label,
            amount=parse_amount(match.group("amount")),
            recorded_balance=parse_amount(balance.group("balance")) if balance else None,
            date_text=date_text,
            time_text=time_text,
            entry_date=entry_date,
            raw_line=line,
        )

    if line.lstrip().startswith("["):
        return None

    legacy = LEGACY_RE.search(line)
    if legacy:
        paid = LEGACY_PAID_RE.search(line)
        total = parse_amount(legacy.group("total"))
        paid_now = parse_amount(paid.group("paid")) if paid else Decimal("0")
        amount = max(total - paid_now, Decimal("0"))
        date_text = legacy.group("date").strip()
        tokens = date_text.split()
        entry_date = _calendar_date(*tokens) if len(tokens) == 3 else None
        return LedgerEntry(
            record_id=record_id,
            line_index=line_index,
            kind=EntryKind.CREDIT_SALE,
            label="Credit Sale",
            amount=amount,
            recorded_balance=amount,
            date_text=date_text,
            entry_date=entry_date,
            is_legacy=True,
            raw_line=line,
        )

    return None


def parse_note(note: str, record_id: str, now: Optional[datetime] = None) -> list[LedgerEntry]:
    """All entries of one note, in line order."""
    now = now or datetime.now()
    entries = []
    for idx, line in enumerate(note.split("\n") if note else []):
        entry = parse_line(line, record_id, idx, now)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_chain(
    records: Iterable[LedgerAccountRecord],
    now: Optional[datetime] = None,
) -> list[LedgerEntry]:
    """Entries of every record, records in chain order, lines in note order."""
    now = now or datetime.now()
    entries = []
    for record in records:
        entries.extend(parse_note(record.note, record.id, now))
    return entries


def format_entry_line(entry: LedgerEntry, balance: Decimal) -> str:
    """Canonical text for an entry with the running balance after it."""
    return (
        f"[{entry.stamp}] {entry.label}: {CURRENCY}{format_amount(entry.amount)}. "
        f"Balance: {CURRENCY}{format_amount(max(balance, Decimal('0')))}"
    )


def new_entry_line(
    book: LedgerBook,
    kind: EntryKind,
    amount: Decimal,
    balance: Decimal,
    moment: datetime,
) -> str:
    """Line for a freshly recorded due or payment."""
    label = BOOK_LABELS[book][kind]
    return (
        f"[{format_stamp(moment)}] {label}: {CURRENCY}{format_amount(amount)}. "
        f"Balance: {CURRENCY}{format_amount(max(balance, Decimal('0')))}"
    )


def detect_anomalies(
    records: Iterable[LedgerAccountRecord],
    now: Optional[datetime] = None,
) -> list[BalanceAnomaly]:
    """Records that show money owed but have no entries to explain it."""
    now = now or datetime.now()
    anomalies = []
    for record in records:
        if record.amount > 0 and not parse_note(record.note, record.id, now):
            anomalies.append(BalanceAnomaly(
                record_id=record.id,
                party_id=record.party_id,
                amount=record.amount,
                message=(
                    f"Balance {CURRENCY}{format_amount(record.amount)} has no "
                    "ledger entries. Clear the balance or add the missing entries."
                ),
            ))
    return anomalies
