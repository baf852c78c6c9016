"""
Audit Models for Shopbooks

Every goal change and every ledger mutation is logged for audit purposes.
The ledger note already carries a human-readable history; the audit log
adds who/what/when for the derived fields (amount, status, completion).

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_PROGRESS_UPDATED = "goal_progress_updated"
    GOAL_COMPLETED = "goal_completed"
    GOAL_ARCHIVED = "goal_archived"
    GOAL_EVALUATION_SKIPPED = "goal_evaluation_skipped"
    FUNDS_ALLOCATED = "funds_allocated"
    WATERFALL_CALCULATED = "waterfall_calculated"

    # Ledger
    LEDGER_ACCOUNT_OPENED = "ledger_account_opened"
    LEDGER_ENTRY_ADDED = "ledger_entry_added"
    LEDGER_ENTRY_EDITED = "ledger_entry_edited"
    LEDGER_ENTRY_DELETED = "ledger_entry_deleted"
    LEDGER_ENTRIES_BULK_DELETED = "ledger_entries_bulk_deleted"
    LEDGER_BALANCE_CLEARED = "ledger_balance_cleared"
    LEDGER_ANOMALY_DETECTED = "ledger_anomaly_detected"
    LEDGER_WRITE_CONFLICT = "ledger_write_conflict"

    # Intents
    INTENT_EXTRACTED = "intent_extracted"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    entity_id is a plain string because goals and ledger records use
    opaque storage ids, not necessarily UUIDs.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'goal', 'ledger_record', 'party')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one refresh-all pass)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(value: Decimal) -> str:
    return f"₹{value:,}"


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.goal_completed(goal_id, title, amount)
        event = AuditEventBuilder.ledger_entry_added(record_id, party_id, ...)
    """

    @staticmethod
    def goal_created(
        goal_id: str,
        title: str,
        metric_type: str,
        target_amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Goal created: {title}",
            details={
                "metric_type": metric_type,
                "target_amount": str(target_amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def goal_updated(
        goal_id: str,
        changed_fields: list[str],
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_UPDATED,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Goal updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
            is_user_action=is_user_action,
        )

    @staticmethod
    def goal_progress_updated(
        goal_id: str,
        previous_amount: Decimal,
        new_amount: Decimal,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_PROGRESS_UPDATED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal progress {previous_amount} -> {new_amount}",
            details={
                "previous_amount": str(previous_amount),
                "new_amount": str(new_amount),
                "source": source,
            },
            is_user_action=source != "evaluator",
        )

    @staticmethod
    def goal_completed(
        goal_id: str,
        title: str,
        current_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal completed: {title}",
            details={"current_amount": str(current_amount)},
        )

    @staticmethod
    def goal_archived(goal_id: str, title: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_ARCHIVED,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Goal archived: {title}",
            is_user_action=True,
        )

    @staticmethod
    def goal_evaluation_skipped(
        goal_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_EVALUATION_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal not evaluated: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def funds_allocated(
        goal_id: str,
        amount: Decimal,
        source: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUNDS_ALLOCATED,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Allocated {_money(amount)} from {source}",
            details={"amount": str(amount), "source": source},
            is_user_action=True,
        )

    @staticmethod
    def waterfall_calculated(
        pool: Decimal,
        goal_count: int,
        funded_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WATERFALL_CALCULATED,
            severity=AuditSeverity.DEBUG,
            entity_type="waterfall",
            description=f"Waterfall: {funded_count}/{goal_count} goals funded from {_money(pool)}",
            details={
                "pool": str(pool),
                "goal_count": goal_count,
                "funded_count": funded_count,
            },
        )

    @staticmethod
    def ledger_mutation(
        event_type: AuditEventType,
        party_id: str,
        record_ids: list[str],
        balance: Decimal,
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="party",
            entity_id=party_id,
            description=description,
            details={
                "record_ids": record_ids,
                "balance": str(balance),
                **(details or {}),
            },
            is_user_action=True,
        )

    @staticmethod
    def ledger_anomaly_detected(
        record_id: str,
        party_id: str,
        amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_ANOMALY_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger_record",
            entity_id=record_id,
            description=f"Balance {_money(amount)} has no ledger entries",
            details={"party_id": party_id, "amount": str(amount)},
        )

    @staticmethod
    def ledger_write_conflict(
        party_id: str,
        operation: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_WRITE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="party",
            entity_id=party_id,
            description=f"Concurrent change rejected during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def intent_extracted(
        intent_kind: str,
        message_length: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTENT_EXTRACTED,
            severity=AuditSeverity.DEBUG,
            entity_type="intent",
            description=f"Goal intent extracted: {intent_kind}",
            details={"kind": intent_kind, "message_length": message_length},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
