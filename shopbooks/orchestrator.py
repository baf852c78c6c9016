"""
Main Orchestrator for Shopbooks

Wires the storage backend, audit logger and services together for a host
application (a UI, a bot, a scheduled job).

DESIGN DECISION: Nothing in the engine builds its own dependencies from
global state. This module is the one place that reads settings and
decides which backend to use; everything below it gets its collaborators
passed in.
"""

from typing import NamedTuple, Optional

import structlog

from shopbooks.agents import GeminiGoalIntentAgent, GoalIntentStrategy
from shopbooks.audit import AuditLogger
from shopbooks.briefing import BriefingService
from shopbooks.config import get_settings
from shopbooks.goals import GoalMetricEvaluator, GoalService
from shopbooks.ledger import LedgerService
from shopbooks.services.storage import (
    FinancialDataSource,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDataSource,
    InMemoryDataSource,
)


logger = structlog.get_logger()


class AppComponents(NamedTuple):
    """Everything a host needs, already wired."""

    data_source: FinancialDataSource
    audit_logger: AuditLogger
    goal_service: GoalService
    ledger_service: LedgerService
    briefing_service: BriefingService
    intent_agent: Optional[GoalIntentStrategy]
    sheets_client: Optional[GoogleSheetsClient]


def create_intent_agent(audit_logger: AuditLogger) -> Optional[GoalIntentStrategy]:
    """Gemini agent if an API key is configured, otherwise None."""
    try:
        return GeminiGoalIntentAgent(audit_logger=audit_logger)
    except Exception as e:
        logger.warning("intent_agent_not_configured", error=str(e))
        return None


def create_app_components(
    use_storage: bool = True,
    data_source: Optional[FinancialDataSource] = None,
    intent_agent: Optional[GoalIntentStrategy] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on the in-memory backend.
        data_source: Use this backend instead of building one
        intent_agent: Use this intent strategy instead of Gemini

    Returns:
        AppComponents
    """
    settings = get_settings()
    sheets_client = None
    audit_logger = None

    if data_source is None and use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            data_source = GoogleSheetsDataSource(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            data_source = None

    if data_source is None:
        data_source = InMemoryDataSource()
    if audit_logger is None:
        audit_logger = AuditLogger()  # Local-only logging

    evaluator = GoalMetricEvaluator(data_source, audit_logger=audit_logger)
    goal_service = GoalService(data_source, evaluator=evaluator, audit_logger=audit_logger)
    ledger_service = LedgerService(
        data_source,
        audit_logger=audit_logger,
        visible_window=settings.ledger.visible_window,
    )
    briefing_service = BriefingService(
        data_source,
        goal_service,
        user_name=settings.app.user_name,
    )

    return AppComponents(
        data_source=data_source,
        audit_logger=audit_logger,
        goal_service=goal_service,
        ledger_service=ledger_service,
        briefing_service=briefing_service,
        intent_agent=intent_agent or create_intent_agent(audit_logger),
        sheets_client=sheets_client,
    )
