"""
Tests for the ledger note parser.

Covers the canonical format, year inference for stamps written without a
year, the legacy "Credit Sale on ..." format and anomaly detection.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from shopbooks.ledger.parser import (
    CLEARED_LINE,
    detect_anomalies,
    format_amount,
    format_entry_line,
    format_stamp,
    infer_year,
    new_entry_line,
    parse_amount,
    parse_line,
    parse_note,
    parse_stamp,
)
from shopbooks.models.ledger import EntryKind, LedgerAccountRecord, LedgerBook


NOW = datetime(2024, 1, 10, 12, 0)


class TestAmounts:
    """Tests for amount parsing and formatting."""

    def test_parse_thousands_separators(self):
        """Test commas are ignored and decimals kept."""
        assert parse_amount("1,23,456.50") == Decimal("123456.50")
        assert parse_amount("400") == Decimal("400")

    def test_format_whole_amount(self):
        """Test whole rupees print without paise."""
        assert format_amount(Decimal("1000")) == "1,000"
        assert format_amount(Decimal("1000.00")) == "1,000"

    def test_format_fractional_amount(self):
        """Test paise print with two decimals."""
        assert format_amount(Decimal("1234.5")) == "1,234.50"

    def test_format_stamp(self):
        """Test new stamps use day, short month, year and 24-hour time."""
        assert format_stamp(datetime(2024, 1, 5, 14, 7)) == "5 Jan 2024 14:07"


class TestYearInference:
    """Tests for stamps without a year."""

    def test_past_date_uses_this_year(self):
        """Test a date earlier this year stays in this year."""
        assert infer_year("5", "Jan", datetime(2024, 1, 10, 9, 0)) == 2024

    def test_future_date_uses_last_year(self):
        """Test a date still ahead this year belongs to last year."""
        assert infer_year("5", "Jan", datetime(2024, 1, 1, 9, 0)) == 2023

    def test_today_uses_this_year(self):
        """Test today's date (midnight already passed) is this year."""
        assert infer_year("1", "Jan", datetime(2024, 1, 1, 8, 0)) == 2024

    def test_stamp_without_year_drops_meridiem(self):
        """Test '5 Jan 10:30 am' gets a year and loses the am/pm."""
        date_text, time_text, entry_date = parse_stamp("5 Jan 10:30 am", NOW)
        assert date_text == "5 Jan 2024"
        assert time_text == "10:30"
        assert entry_date == date(2024, 1, 5)

    def test_stamp_drops_every_meridiem(self):
        """Test a doubled am/pm is removed entirely, not just the first one."""
        _, time_text, entry_date = parse_stamp("5 Jan 10:30 pm PM", NOW)
        assert time_text == "10:30"
        assert entry_date == date(2024, 1, 5)

    def test_stamp_day_month_only(self):
        """Test a two-token stamp gets a year and no time."""
        date_text, time_text, entry_date = parse_stamp("20 Dec", NOW)
        assert date_text == "20 Dec 2023"
        assert time_text == ""
        assert entry_date == date(2023, 12, 20)

    def test_stamp_with_year(self):
        """Test a stamp that carries its year is taken as written."""
        date_text, time_text, entry_date = parse_stamp("5 Jan 2022 10:30", NOW)
        assert date_text == "5 Jan 2022"
        assert time_text == "10:30"
        assert entry_date == date(2022, 1, 5)


class TestParseLine:
    """Tests for single-line parsing."""

    def test_canonical_due(self):
        """Test a canonical due line."""
        entry = parse_line(
            "[5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000", "r1", 0, NOW,
        )
        assert entry.kind == EntryKind.DUE_ADDED
        assert entry.amount == Decimal("1000")
        assert entry.recorded_balance == Decimal("1000")
        assert entry.stamp == "5 Jan 2024 10:30"
        assert not entry.is_legacy

    def test_canonical_payment_with_paise(self):
        """Test a payment with paise."""
        entry = parse_line("[6 Jan 2024 11:00] Received: ₹400.50. Balance: ₹599.50", "r1", 1, NOW)
        assert entry.kind == EntryKind.PAYMENT_RECEIVED
        assert entry.amount == Decimal("400.50")
        assert entry.line_index == 1

    def test_payable_labels(self):
        """Test supplier-side labels map to the same kinds."""
        made = parse_line("[6 Jan 2024 11:00] Payment Made: ₹100. Balance: ₹0", "r1", 0, NOW)
        added = parse_line("[6 Jan 2024 11:00] New Payable Added: ₹100. Balance: ₹100", "r1", 0, NOW)
        assert made.kind == EntryKind.PAYMENT_RECEIVED
        assert made.label == "Payment Made"
        assert added.kind == EntryKind.DUE_ADDED

    def test_legacy_credit_sale(self):
        """Test the old format counts total minus paid as credit."""
        entry = parse_line(
            "Credit Sale on 5 Jan 2024. Total Bill: ₹1,500. Paid Now: ₹500.", "r1", 0, NOW,
        )
        assert entry.is_legacy
        assert entry.kind == EntryKind.CREDIT_SALE
        assert entry.amount == Decimal("1000")
        assert entry.recorded_balance == Decimal("1000")
        assert entry.entry_date == date(2024, 1, 5)

    def test_legacy_without_paid(self):
        """Test the old format with nothing paid up front."""
        entry = parse_line("Credit Sale on 5 Jan 2024. Total Bill: ₹750.", "r1", 0, NOW)
        assert entry.amount == Decimal("750")

    def test_cleared_line_is_not_an_entry(self):
        """Test the clear-balance marker is ignored."""
        assert parse_line(CLEARED_LINE, "r1", 0, NOW) is None

    def test_free_text_is_not_an_entry(self):
        """Test remarks typed by hand are ignored."""
        assert parse_line("Customer will pay after Diwali", "r1", 0, NOW) is None
        assert parse_line("", "r1", 0, NOW) is None


class TestParseNote:
    """Tests for whole notes."""

    def test_entries_keep_line_indices(self):
        """Test unparseable lines still count towards line_index."""
        note = "\n".join([
            "[5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000",
            "Promised by Friday",
            "[6 Jan 2024 11:00] Received: ₹400. Balance: ₹600",
        ])
        entries = parse_note(note, "r1", NOW)
        assert [e.line_index for e in entries] == [0, 2]

    def test_empty_note(self):
        """Test an empty note has no entries."""
        assert parse_note("", "r1", NOW) == []


class TestFormatting:
    """Tests for writing lines."""

    def test_format_entry_line_preserves_label(self):
        """Test rewriting keeps the entry's own label and stamp."""
        entry = parse_line("[6 Jan 2024 11:00] Payment Made: ₹100. Balance: ₹50", "r1", 0, NOW)
        assert format_entry_line(entry, Decimal("900")) == (
            "[6 Jan 2024 11:00] Payment Made: ₹100. Balance: ₹900"
        )

    def test_balance_prints_clamped(self):
        """Test a negative running balance prints as zero."""
        entry = parse_line("[6 Jan 2024 11:00] Received: ₹100. Balance: ₹0", "r1", 0, NOW)
        assert format_entry_line(entry, Decimal("-50")).endswith("Balance: ₹0")

    def test_new_line_uses_book_label(self):
        """Test new lines use receivable or payable wording."""
        moment = datetime(2024, 1, 5, 10, 30)
        assert new_entry_line(
            LedgerBook.RECEIVABLE, EntryKind.DUE_ADDED, Decimal("1000"), Decimal("1000"), moment,
        ) == "[5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000"
        assert new_entry_line(
            LedgerBook.PAYABLE, EntryKind.PAYMENT_RECEIVED, Decimal("200"), Decimal("800"), moment,
        ) == "[5 Jan 2024 10:30] Payment Made: ₹200. Balance: ₹800"

    def test_new_line_parses_back(self):
        """Test a written line is read as the same kind and amount."""
        line = new_entry_line(
            LedgerBook.RECEIVABLE, EntryKind.PAYMENT_RECEIVED, Decimal("250.75"), Decimal("0"), NOW,
        )
        entry = parse_line(line, "r1", 0, NOW)
        assert entry.kind == EntryKind.PAYMENT_RECEIVED
        assert entry.amount == Decimal("250.75")


class TestAnomalies:
    """Tests for balances with nothing behind them."""

    def test_amount_without_entries_is_anomaly(self):
        """Test a record with money owed but no lines is flagged."""
        record = LedgerAccountRecord(party_id="c1", amount=Decimal("500"), note="old remark")
        anomalies = detect_anomalies([record], NOW)
        assert len(anomalies) == 1
        assert anomalies[0].record_id == record.id
        assert anomalies[0].amount == Decimal("500")

    def test_zero_amount_is_not_anomaly(self):
        """Test an empty, zero-balance record is fine."""
        record = LedgerAccountRecord(party_id="c1", amount=Decimal("0"))
        assert detect_anomalies([record], NOW) == []

    def test_record_with_entries_is_not_anomaly(self):
        """Test a record with entries is never flagged."""
        record = LedgerAccountRecord(
            party_id="c1",
            amount=Decimal("1000"),
            note="[5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000",
        )
        assert detect_anomalies([record], NOW) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
