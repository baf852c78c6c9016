"""
Data Models Package

This package contains all Pydantic models used in Shopbooks.
All data flowing through the engine must conform to these schemas.
"""

from shopbooks.models.finance import (
    DateRange,
    DayTotals,
    Expense,
    FinancialSummary,
    SaleTransaction,
)
from shopbooks.models.goal import (
    AllocationSource,
    Goal,
    GoalDraft,
    GoalEvaluation,
    GoalStatus,
    GoalType,
    MetricType,
    ProgressOperation,
    RecurrenceType,
    WaterfallAllocation,
    WaterfallSummary,
)
from shopbooks.models.ledger import (
    BalanceAnomaly,
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
from shopbooks.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from shopbooks.models.intent import (
    CreateGoalIntent,
    GoalIntent,
    UnrecognizedIntent,
    UpdateGoalIntent,
    goal_intent_adapter,
)

__all__ = [
    # Finance models
    "DateRange",
    "DayTotals",
    "Expense",
    "FinancialSummary",
    "SaleTransaction",
    # Goal models
    "AllocationSource",
    "Goal",
    "GoalDraft",
    "GoalEvaluation",
    "GoalStatus",
    "GoalType",
    "MetricType",
    "ProgressOperation",
    "RecurrenceType",
    "WaterfallAllocation",
    "WaterfallSummary",
    # Ledger models
    "BalanceAnomaly",
    "EntryKind",
    "LedgerAccountRecord",
    "LedgerBook",
    "LedgerEntry",
    "LedgerMutationResult",
    "LedgerOperation",
    "LedgerRecordUpdate",
    "LedgerStatus",
    "LedgerView",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Intent models
    "CreateGoalIntent",
    "GoalIntent",
    "UnrecognizedIntent",
    "UpdateGoalIntent",
    "goal_intent_adapter",
]
