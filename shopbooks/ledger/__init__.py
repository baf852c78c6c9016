"""Ledger notes: parsing, balance replay and mutations."""

from shopbooks.ledger.parser import (
    CLEARED_LINE,
    detect_anomalies,
    format_amount,
    format_entry_line,
    format_stamp,
    infer_year,
    new_entry_line,
    parse_chain,
    parse_line,
    parse_note,
)
from shopbooks.ledger.recalculator import (
    ReplayResult,
    replay_chain,
    replay_record,
    true_index,
    window_offset,
)
from shopbooks.ledger.service import LedgerService

__all__ = [
    # Parser
    "CLEARED_LINE",
    "detect_anomalies",
    "format_amount",
    "format_entry_line",
    "format_stamp",
    "infer_year",
    "new_entry_line",
    "parse_chain",
    "parse_line",
    "parse_note",
    # Recalculator
    "ReplayResult",
    "replay_chain",
    "replay_record",
    "true_index",
    "window_offset",
    # Service
    "LedgerService",
]
