"""
Audit Logger

DESIGN DECISION: Every goal change and ledger mutation is logged.
This provides:
1. Traceability of derived fields (why is this balance 800?)
2. Debugging capability
3. A history the shop owner can review

The audit logger:
- Is async so it can share the engine's await points
- Gracefully handles failures (a failed audit write never fails a mutation)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from shopbooks.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from shopbooks.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (Google Sheets in production), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def log_goal_created(
        self,
        goal_id: str,
        title: str,
        metric_type: str,
        target_amount: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.goal_created(
            goal_id=goal_id,
            title=title,
            metric_type=metric_type,
            target_amount=target_amount,
        ))

    async def log_goal_updated(
        self,
        goal_id: str,
        changed_fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.goal_updated(
            goal_id=goal_id,
            changed_fields=changed_fields,
        ))

    async def log_goal_progress(
        self,
        goal_id: str,
        previous_amount: Decimal,
        new_amount: Decimal,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a change to a goal's current amount."""
        await self.log(AuditEventBuilder.goal_progress_updated(
            goal_id=goal_id,
            previous_amount=previous_amount,
            new_amount=new_amount,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_goal_completed(
        self,
        goal_id: str,
        title: str,
        current_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_completed(
            goal_id=goal_id,
            title=title,
            current_amount=current_amount,
            correlation_id=correlation_id,
        ))

    async def log_goal_archived(self, goal_id: str, title: str) -> None:
        await self.log(AuditEventBuilder.goal_archived(goal_id=goal_id, title=title))

    async def log_goal_evaluation_skipped(
        self,
        goal_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_evaluation_skipped(
            goal_id=goal_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_funds_allocated(
        self,
        goal_id: str,
        amount: Decimal,
        source: str,
    ) -> None:
        await self.log(AuditEventBuilder.funds_allocated(
            goal_id=goal_id,
            amount=amount,
            source=source,
        ))

    async def log_waterfall(
        self,
        pool: Decimal,
        goal_count: int,
        funded_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.waterfall_calculated(
            pool=pool,
            goal_count=goal_count,
            funded_count=funded_count,
        ))

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def log_ledger_mutation(
        self,
        event_type: AuditEventType,
        party_id: str,
        record_ids: list[str],
        balance: Decimal,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log any ledger insert / edit / delete / clear."""
        await self.log(AuditEventBuilder.ledger_mutation(
            event_type=event_type,
            party_id=party_id,
            record_ids=record_ids,
            balance=balance,
            description=description,
            details=details,
        ))

    async def log_ledger_anomaly(
        self,
        record_id: str,
        party_id: str,
        amount: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_anomaly_detected(
            record_id=record_id,
            party_id=party_id,
            amount=amount,
        ))

    async def log_ledger_conflict(
        self,
        party_id: str,
        operation: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_write_conflict(
            party_id=party_id,
            operation=operation,
            error_message=error_message,
        ))

    # -------------------------------------------------------------------------
    # Intents and errors
    # -------------------------------------------------------------------------

    async def log_intent_extracted(self, intent_kind: str, message_length: int) -> None:
        await self.log(AuditEventBuilder.intent_extracted(
            intent_kind=intent_kind,
            message_length=message_length,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., refreshing all goals).
    """
    return uuid4()
