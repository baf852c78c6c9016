"""
Tests for LedgerService against the in-memory backend.

Every mutation is checked for the same thing: afterwards the note, amount
and status of each touched record agree, and a refused mutation leaves
storage untouched.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from shopbooks.audit.logger import AuditLogger
from shopbooks.errors import (
    EntryNotEditableError,
    EntryNotFoundError,
    InvalidAmountError,
    NoOpenAccountError,
)
from shopbooks.ledger.parser import CLEARED_LINE
from shopbooks.ledger.recalculator import replay_record
from shopbooks.ledger.service import LedgerService
from shopbooks.models.audit import AuditEventType
from shopbooks.models.ledger import (
    LedgerAccountRecord,
    LedgerBook,
    LedgerOperation,
    LedgerStatus,
)
from shopbooks.services.storage.interface import ConflictError
from shopbooks.services.storage.memory import InMemoryAuditStorage, InMemoryDataSource


NOW = datetime(2024, 1, 10, 12, 0)

DUE_1000 = "[5 Jan 2024 10:30] New Due Added: ₹1,000. Balance: ₹1,000"
PAID_400 = "[6 Jan 2024 11:00] Received: ₹400. Balance: ₹600"
DUE_200 = "[7 Jan 2024 09:15] New Due Added: ₹200. Balance: ₹800"


class RacingDataSource(InMemoryDataSource):
    """Another writer bumps every record right after we read it."""

    async def list_ledger_records(self, *args, **kwargs):
        records = await super().list_ledger_records(*args, **kwargs)
        for record in records:
            stored = self._records[record.id]
            self._records[record.id] = stored.model_copy(update={"revision": stored.revision + 1})
        return records


def make_service(source=None, window: int = 20):
    source = source or InMemoryDataSource()
    audit_storage = InMemoryAuditStorage()
    service = LedgerService(
        source,
        audit_logger=AuditLogger(audit_storage),
        clock=lambda: NOW,
        visible_window=window,
    )
    return service, source, audit_storage


def assert_consistent(record: LedgerAccountRecord):
    """Stored amount and status match a fresh replay of the note."""
    replay = replay_record(record, NOW)
    assert record.amount == replay.amount
    assert record.status == replay.status


async def scenario_c(service: LedgerService):
    """+1000, -400, +200 on customer c1."""
    opened = await service.open_account("c1", Decimal("1000"), due_date=date(2024, 1, 20))
    await service.record_payment("c1", Decimal("400"))
    await service.record_due("c1", Decimal("200"))
    return opened.updated_records[0].id


class TestInsert:
    """Tests for opening accounts and appending entries."""

    @pytest.mark.asyncio
    async def test_open_account(self):
        """Test a new account starts with one due line."""
        service, source, _ = make_service()
        result = await service.open_account("c1", Decimal("1000"), party_name="Ravi")

        record = result.updated_records[0]
        assert result.operation == LedgerOperation.OPEN_ACCOUNT
        assert record.note == "[10 Jan 2024 12:00] New Due Added: ₹1,000. Balance: ₹1,000"
        assert record.amount == Decimal("1000")
        assert record.status == LedgerStatus.PENDING
        assert_consistent(source.get_record(record.id))

    @pytest.mark.asyncio
    async def test_payable_account_uses_payable_wording(self):
        """Test supplier accounts are written with payable labels."""
        service, _, _ = make_service()
        result = await service.open_account("s1", Decimal("500"), book=LedgerBook.PAYABLE)
        assert "New Payable Added: ₹500" in result.updated_records[0].note

    @pytest.mark.asyncio
    async def test_scenario_running_balance(self):
        """Test +1000 -400 +200 leaves 800 pending."""
        service, source, _ = make_service()
        record_id = await scenario_c(service)

        record = source.get_record(record_id)
        assert record.amount == Decimal("800")
        assert record.status == LedgerStatus.PENDING
        assert record.note.splitlines()[-1].endswith("New Due Added: ₹200. Balance: ₹800")
        assert record.revision == 2
        assert_consistent(record)

    @pytest.mark.asyncio
    async def test_full_payment_marks_paid(self):
        """Test paying the whole balance closes the account."""
        service, source, _ = make_service()
        opened = await service.open_account("c1", Decimal("1000"))
        result = await service.record_payment("c1", Decimal("1000"))

        assert result.status == LedgerStatus.PAID
        record = source.get_record(opened.updated_records[0].id)
        assert record.amount == Decimal("0")
        assert record.status == LedgerStatus.PAID

    @pytest.mark.asyncio
    async def test_overpayment_clamps_to_zero(self):
        """Test paying more than owed stores 0, not a negative amount."""
        service, _, _ = make_service()
        await service.open_account("c1", Decimal("300"))
        result = await service.record_payment("c1", Decimal("500"))
        assert result.balance == Decimal("0")
        assert result.status == LedgerStatus.PAID

    @pytest.mark.asyncio
    async def test_due_can_move_due_date(self):
        """Test a new due can push the due date."""
        service, source, _ = make_service()
        opened = await service.open_account("c1", Decimal("100"), due_date=date(2024, 1, 15))
        await service.record_due("c1", Decimal("50"), due_date=date(2024, 2, 1))
        assert source.get_record(opened.updated_records[0].id).due_date == date(2024, 2, 1)

    @pytest.mark.asyncio
    async def test_append_goes_to_primary_record(self):
        """Test new entries land on the earliest-due record."""
        later = LedgerAccountRecord(party_id="c1", amount=Decimal("200"), due_date=date(2024, 2, 1),
                                    note="[1 Jan 2024 10:00] New Due Added: ₹200. Balance: ₹200")
        earlier = LedgerAccountRecord(party_id="c1", amount=Decimal("1000"), due_date=date(2024, 1, 15),
                                      note=DUE_1000)
        service, source, _ = make_service(InMemoryDataSource(ledger_records=[later, earlier]))

        await service.record_payment("c1", Decimal("100"))
        assert source.get_record(earlier.id).amount == Decimal("900")
        assert source.get_record(later.id).revision == 0

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self):
        """Test zero and negative amounts are refused before any write."""
        service, source, _ = make_service()
        await service.open_account("c1", Decimal("100"))
        writes = source.write_count

        with pytest.raises(InvalidAmountError):
            await service.record_payment("c1", Decimal("0"))
        with pytest.raises(InvalidAmountError):
            await service.record_due("c1", Decimal("-5"))
        assert source.write_count == writes

    @pytest.mark.asyncio
    async def test_no_open_account(self):
        """Test appending without a pending record raises."""
        service, _, _ = make_service()
        with pytest.raises(NoOpenAccountError):
            await service.record_payment("nobody", Decimal("10"))


class TestEditAndDelete:
    """Tests for edit, single delete and bulk delete."""

    @pytest.mark.asyncio
    async def test_delete_payment_raises_balance(self):
        """Test deleting the -400 entry leaves 1200 pending."""
        service, source, _ = make_service()
        record_id = await scenario_c(service)

        result = await service.delete_entry("c1", 1)

        record = source.get_record(record_id)
        assert result.balance == Decimal("1200")
        assert record.amount == Decimal("1200")
        assert record.status == LedgerStatus.PENDING
        assert "Received" not in record.note
        assert record.note.splitlines()[-1].endswith("Balance: ₹1,200")
        assert_consistent(record)

    @pytest.mark.asyncio
    async def test_edit_latest_entry(self):
        """Test the most recent entry can be edited."""
        service, source, _ = make_service()
        record_id = await scenario_c(service)

        result = await service.edit_entry("c1", 2, Decimal("500"))

        record = source.get_record(record_id)
        assert result.balance == Decimal("1100")
        assert "New Due Added: ₹500. Balance: ₹1,100" in record.note
        assert_consistent(record)

    @pytest.mark.asyncio
    async def test_edit_older_entry_refused(self):
        """Test only the latest entry is editable."""
        service, source, _ = make_service()
        record_id = await scenario_c(service)
        before = source.get_record(record_id)

        with pytest.raises(EntryNotEditableError):
            await service.edit_entry("c1", 0, Decimal("900"))
        assert source.get_record(record_id) == before

    @pytest.mark.asyncio
    async def test_edit_to_zero_refused(self):
        """Test an edit must keep a positive amount."""
        service, _, _ = make_service()
        await scenario_c(service)
        with pytest.raises(InvalidAmountError):
            await service.edit_entry("c1", 2, Decimal("0"))

    @pytest.mark.asyncio
    async def test_edit_that_pays_off_marks_paid(self):
        """Test editing the last payment up to the full balance closes the account."""
        service, _, _ = make_service()
        await service.open_account("c1", Decimal("1000"))
        await service.record_payment("c1", Decimal("400"))
        result = await service.edit_entry("c1", 1, Decimal("1000"))
        assert result.status == LedgerStatus.PAID

    @pytest.mark.asyncio
    async def test_delete_out_of_range(self):
        """Test deleting a position that doesn't exist raises and writes nothing."""
        service, source, _ = make_service()
        await scenario_c(service)
        writes = source.write_count

        with pytest.raises(EntryNotFoundError):
            await service.delete_entry("c1", 3)
        assert source.write_count == writes

    @pytest.mark.asyncio
    async def test_visible_index_maps_through_window(self):
        """Test indices are relative to the visible window."""
        service, source, _ = make_service(window=2)
        record_id = await scenario_c(service)

        # Window shows [-400, +200]; position 0 is the payment
        await service.delete_entry("c1", 0)
        assert source.get_record(record_id).amount == Decimal("1200")

    @pytest.mark.asyncio
    async def test_bulk_delete_across_records(self):
        """Test one global replay and only changed records are written."""
        first = LedgerAccountRecord(party_id="c1", amount=Decimal("1000"),
                                    due_date=date(2024, 1, 15), note=DUE_1000)
        second = LedgerAccountRecord(party_id="c1", amount=Decimal("800"),
                                     due_date=date(2024, 1, 20), note=f"{PAID_400}\n{DUE_200}")
        service, source, _ = make_service(InMemoryDataSource(ledger_records=[first, second]))

        result = await service.delete_entries("c1", [1])

        assert [r.id for r in result.updated_records] == [second.id]
        assert source.get_record(first.id).revision == 0
        assert source.get_record(second.id).amount == Decimal("1200")
        assert result.balance == Decimal("1200")

    @pytest.mark.asyncio
    async def test_bulk_delete_everything_closes_chain(self):
        """Test deleting every entry leaves the records paid."""
        service, source, _ = make_service()
        record_id = await scenario_c(service)

        result = await service.delete_entries("c1", [0, 1, 2])

        record = source.get_record(record_id)
        assert record.amount == Decimal("0")
        assert record.status == LedgerStatus.PAID
        assert result.status == LedgerStatus.PAID

    @pytest.mark.asyncio
    async def test_bulk_delete_needs_selection(self):
        """Test an empty selection is refused."""
        service, _, _ = make_service()
        await scenario_c(service)
        with pytest.raises(EntryNotFoundError):
            await service.delete_entries("c1", [])


class TestViewAndRecovery:
    """Tests for get_ledger and clear_balance."""

    @pytest.mark.asyncio
    async def test_get_ledger(self):
        """Test the view carries entries, outstanding and due date."""
        service, _, _ = make_service(window=2)
        await scenario_c(service)

        view = await service.get_ledger("c1")
        assert view.total_entries == 3
        assert view.window_offset == 1
        assert len(view.entries) == 2
        assert view.outstanding == Decimal("800")
        assert view.next_due_date == date(2024, 1, 20)
        assert not view.has_anomaly

    @pytest.mark.asyncio
    async def test_outstanding_after_bulk_delete(self):
        """Test the view's total matches the chain's closing balance, not a sum of records."""
        first = LedgerAccountRecord(party_id="c1", amount=Decimal("1000"),
                                    due_date=date(2024, 1, 15), note=DUE_1000)
        second = LedgerAccountRecord(party_id="c1", amount=Decimal("800"),
                                     due_date=date(2024, 1, 20), note=f"{PAID_400}\n{DUE_200}")
        service, _, _ = make_service(InMemoryDataSource(ledger_records=[first, second]))

        result = await service.delete_entries("c1", [1])
        view = await service.get_ledger("c1")

        assert result.balance == Decimal("1200")
        assert view.outstanding == Decimal("1200")

    @pytest.mark.asyncio
    async def test_outstanding_across_untouched_records(self):
        """Test a multi-record chain totals charges minus payments."""
        first = LedgerAccountRecord(party_id="c1", amount=Decimal("1000"),
                                    due_date=date(2024, 1, 15), note=DUE_1000)
        second = LedgerAccountRecord(party_id="c1", amount=Decimal("800"),
                                     due_date=date(2024, 1, 20), note=f"{PAID_400}\n{DUE_200}")
        service, _, _ = make_service(InMemoryDataSource(ledger_records=[first, second]))

        view = await service.get_ledger("c1")

        assert view.outstanding == Decimal("800")

    @pytest.mark.asyncio
    async def test_anomaly_then_clear(self):
        """Test a balance with no entries is flagged and can be cleared."""
        orphan = LedgerAccountRecord(party_id="c1", amount=Decimal("500"))
        service, source, audit = make_service(InMemoryDataSource(ledger_records=[orphan]))

        view = await service.get_ledger("c1")
        assert view.has_anomaly
        assert view.anomalies[0].amount == Decimal("500")
        assert view.outstanding == Decimal("500")

        # Viewing twice leaves nothing in the audit trail
        await service.get_ledger("c1")
        assert not any(e.event_type == AuditEventType.LEDGER_ANOMALY_DETECTED for e in audit.events)

        result = await service.clear_balance("c1")

        record = source.get_record(orphan.id)
        assert result.status == LedgerStatus.PAID
        assert record.amount == Decimal("0")
        assert record.status == LedgerStatus.PAID
        assert record.note == CLEARED_LINE
        anomaly_events = [e for e in audit.events if e.event_type == AuditEventType.LEDGER_ANOMALY_DETECTED]
        assert len(anomaly_events) == 1

    @pytest.mark.asyncio
    async def test_clear_keeps_history(self):
        """Test clearing appends a marker instead of erasing the note."""
        service, source, _ = make_service()
        record_id = await scenario_c(service)

        await service.clear_balance("c1")

        lines = source.get_record(record_id).note.splitlines()
        assert len(lines) == 4
        assert lines[-1] == CLEARED_LINE


class TestConcurrency:
    """Tests for the revision check on writes."""

    @pytest.mark.asyncio
    async def test_conflict_raises_and_writes_nothing(self):
        """Test a concurrent change rejects the write and is audited."""
        record = LedgerAccountRecord(party_id="c1", amount=Decimal("1000"), note=DUE_1000)
        source = RacingDataSource(ledger_records=[record])
        service, _, audit = make_service(source)

        with pytest.raises(ConflictError):
            await service.record_payment("c1", Decimal("400"))

        stored = source.get_record(record.id)
        assert stored.note == DUE_1000
        assert stored.amount == Decimal("1000")
        assert any(e.event_type == AuditEventType.LEDGER_WRITE_CONFLICT for e in audit.events)

    @pytest.mark.asyncio
    async def test_conflict_on_bulk_delete_is_all_or_nothing(self):
        """Test no record of a multi-record batch is written on conflict."""
        first = LedgerAccountRecord(party_id="c1", amount=Decimal("1000"),
                                    due_date=date(2024, 1, 15), note=DUE_1000)
        second = LedgerAccountRecord(party_id="c1", amount=Decimal("800"),
                                     due_date=date(2024, 1, 20), note=f"{PAID_400}\n{DUE_200}")
        source = RacingDataSource(ledger_records=[first, second])
        service, _, _ = make_service(source)

        with pytest.raises(ConflictError):
            await service.delete_entries("c1", [0])

        assert source.get_record(first.id).note == DUE_1000
        assert source.get_record(second.id).note == f"{PAID_400}\n{DUE_200}"


class TestAudit:
    """Tests for the audit trail of mutations."""

    @pytest.mark.asyncio
    async def test_every_mutation_is_audited(self):
        """Test open, add, delete and clear each leave an event."""
        service, _, audit = make_service()
        await scenario_c(service)
        await service.delete_entry("c1", 2)
        await service.clear_balance("c1")

        types = [e.event_type for e in audit.events]
        assert types.count(AuditEventType.LEDGER_ACCOUNT_OPENED) == 1
        assert types.count(AuditEventType.LEDGER_ENTRY_ADDED) == 2
        assert AuditEventType.LEDGER_ENTRY_DELETED in types
        assert AuditEventType.LEDGER_BALANCE_CLEARED in types


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
