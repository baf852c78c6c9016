"""
Goal Service

Goal lifecycle on top of the evaluator and the waterfall allocator:
create, edit, complete, archive, manual progress, fund allocation and the
monthly waterfall.

CRITICAL: Refresh before allocating. waterfall() re-evaluates every active
goal (one at a time, in order) before it reads the list it allocates over,
so goals completed by the refresh drop out of the waterfall.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog

from shopbooks.audit.logger import AuditLogger, create_correlation_id
from shopbooks.errors import GoalNotFoundError, InvalidAmountError
from shopbooks.finance.aggregation import FinancialAggregator
from shopbooks.goals.evaluator import GoalMetricEvaluator
from shopbooks.goals.waterfall import allocate, order_goals
from shopbooks.models.finance import DateRange
from shopbooks.models.goal import (
    AllocationSource,
    Goal,
    GoalDraft,
    GoalEvaluation,
    GoalStatus,
    MetricType,
    ProgressOperation,
    WaterfallSummary,
)
from shopbooks.models.intent import (
    CreateGoalIntent,
    GoalIntent,
    UnrecognizedIntent,
    UpdateGoalIntent,
)
from shopbooks.services.storage.interface import FinancialDataSource


# Fields a user may change through update_goal()
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "target_amount",
    "metric_type",
    "start_tracking_date",
    "deadline",
    "product_id",
    "is_recurring",
    "recurrence_type",
    "status",
})


class GoalService:
    """
    Async goal operations.

    Every write goes through the data source; the service keeps nothing
    between calls.
    """

    def __init__(
        self,
        data_source: FinancialDataSource,
        evaluator: Optional[GoalMetricEvaluator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._source = data_source
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._evaluator = evaluator or GoalMetricEvaluator(
            data_source, audit_logger=audit_logger, clock=self._clock,
        )
        self._aggregator = FinancialAggregator(data_source)
        self._logger = structlog.get_logger()

    # =========================================================================
    # READS
    # =========================================================================

    async def get_goal(self, goal_id: str) -> Goal:
        goal = await self._source.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError(f"Goal not found: {goal_id}")
        return goal

    async def list_goals(self, status: Optional[GoalStatus] = None) -> list[Goal]:
        return await self._source.list_goals(status=status)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def create_goal(self, draft: GoalDraft) -> Goal:
        """Store a new active goal with zero progress."""
        fields = draft.model_dump(exclude_none=True)
        fields.setdefault("start_tracking_date", self._clock().date())
        goal = await self._source.create_goal(Goal(**fields))

        if self._audit_logger:
            await self._audit_logger.log_goal_created(
                goal_id=goal.id,
                title=goal.title,
                metric_type=goal.metric_type.value,
                target_amount=goal.target_amount,
            )
        return goal

    async def update_goal(self, goal_id: str, changes: dict[str, Any]) -> Goal:
        """
        Change user-editable fields.

        Lowering the target below the current amount completes the goal.

        Raises:
            GoalNotFoundError: No such goal
            ValueError: A field that can't be edited
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields can't be edited: {', '.join(sorted(unknown))}")

        goal = await self.get_goal(goal_id)
        # Validate the merged goal before anything is written
        merged = Goal.model_validate({**goal.model_dump(), **changes})
        fields = dict(changes)
        if merged.status == GoalStatus.ACTIVE and merged.is_target_met:
            fields["status"] = GoalStatus.COMPLETED

        if fields.get("status") == GoalStatus.COMPLETED and goal.status != GoalStatus.COMPLETED:
            fields["completed_at"] = self._clock()
        elif "status" in fields and fields["status"] != GoalStatus.COMPLETED:
            fields["completed_at"] = None

        updated = await self._source.update_goal(goal_id, fields)
        if self._audit_logger:
            await self._audit_logger.log_goal_updated(
                goal_id=goal_id,
                changed_fields=sorted(changes),
            )
        return updated

    async def complete_goal(self, goal_id: str) -> Goal:
        """Mark a goal completed by hand."""
        goal = await self.get_goal(goal_id)
        if goal.status == GoalStatus.COMPLETED:
            return goal

        updated = await self._source.update_goal(goal_id, {
            "status": GoalStatus.COMPLETED,
            "completed_at": self._clock(),
        })
        if self._audit_logger:
            await self._audit_logger.log_goal_completed(
                goal_id=goal_id,
                title=goal.title,
                current_amount=goal.current_amount,
            )
        return updated

    async def archive_goal(self, goal_id: str) -> Goal:
        """Soft delete. The row stays; it just stops showing up."""
        goal = await self.get_goal(goal_id)
        updated = await self._source.update_goal(goal_id, {"status": GoalStatus.ARCHIVED})
        if self._audit_logger:
            await self._audit_logger.log_goal_archived(goal_id=goal_id, title=goal.title)
        return updated

    # =========================================================================
    # MANUAL PROGRESS
    # =========================================================================

    async def adjust_progress(
        self,
        goal_id: str,
        amount: Decimal,
        operation: ProgressOperation = ProgressOperation.ADD,
    ) -> Goal:
        """
        Change progress by hand.

        The goal becomes MANUAL_CHECK so the next refresh doesn't overwrite
        what the owner entered. Progress never goes below zero.
        """
        if amount < 0 or (amount == 0 and operation != ProgressOperation.SET):
            raise InvalidAmountError(f"Amount must be greater than zero, got {amount}")

        goal = await self.get_goal(goal_id)
        if operation == ProgressOperation.ADD:
            new_amount = goal.current_amount + amount
        elif operation == ProgressOperation.SUBTRACT:
            new_amount = goal.current_amount - amount
        else:
            new_amount = amount
        new_amount = max(new_amount, Decimal("0"))

        fields: dict[str, Any] = {
            "current_amount": new_amount,
            "metric_type": MetricType.MANUAL_CHECK,
        }
        fields.update(self._completion_fields(goal, new_amount, goal.target_amount))
        updated = await self._source.update_goal(goal_id, fields)

        await self._log_progress(goal, updated, source="manual")
        return updated

    async def allocate_to_goal(
        self,
        goal_id: str,
        amount: Decimal,
        source: AllocationSource = AllocationSource.MANUAL,
    ) -> Goal:
        """Put money towards a goal (typically from the month's surplus)."""
        if amount <= 0:
            raise InvalidAmountError(f"Amount must be greater than zero, got {amount}")

        goal = await self.get_goal(goal_id)
        new_amount = goal.current_amount + amount
        fields: dict[str, Any] = {"current_amount": new_amount}
        fields.update(self._completion_fields(goal, new_amount, goal.target_amount))
        updated = await self._source.update_goal(goal_id, fields)

        if self._audit_logger:
            await self._audit_logger.log_funds_allocated(
                goal_id=goal_id,
                amount=amount,
                source=source.value,
            )
        await self._log_progress(goal, updated, source=source.value)
        return updated

    # =========================================================================
    # EVALUATION AND ALLOCATION
    # =========================================================================

    async def refresh_goal(self, goal_id: str, today: Optional[date] = None) -> GoalEvaluation:
        goal = await self.get_goal(goal_id)
        return await self._evaluator.evaluate(goal, today=today)

    async def refresh_all(self, today: Optional[date] = None) -> list[GoalEvaluation]:
        """Re-evaluate every active goal, one after another."""
        correlation_id = create_correlation_id()
        goals = await self._source.list_goals(status=GoalStatus.ACTIVE)

        results = []
        for goal in goals:
            results.append(await self._evaluator.evaluate(
                goal, today=today, correlation_id=correlation_id,
            ))

        self._logger.info(
            "goals_refreshed",
            correlation_id=str(correlation_id),
            goal_count=len(results),
            completed=sum(1 for r in results if r.completed_now),
        )
        return results

    async def monthly_pool(self, today: Optional[date] = None) -> Decimal:
        """Net profit from the 1st of the month through today."""
        today = today or self._clock().date()
        return await self._aggregator.month_to_date_profit(today)

    async def waterfall(self, today: Optional[date] = None) -> WaterfallSummary:
        """Refresh every goal, then split this month's profit across the active ones."""
        today = today or self._clock().date()
        await self.refresh_all(today)

        goals = order_goals(await self._source.list_goals(status=GoalStatus.ACTIVE))
        pool = await self.monthly_pool(today)
        summary = allocate(goals, pool, today)

        if self._audit_logger:
            await self._audit_logger.log_waterfall(
                pool=summary.pool,
                goal_count=len(summary.allocations),
                funded_count=sum(1 for a in summary.allocations if a.is_fully_funded),
            )
        return summary

    async def available_surplus(self, today: Optional[date] = None) -> Decimal:
        """
        Profit left over this month after the manually funded goals.

        Month-to-date net profit minus the targets of EMI / manual goals
        completed this month, never below zero.
        """
        today = today or self._clock().date()
        month = DateRange.month_to_date(today)
        profit = await self._aggregator.net_profit(month)

        completed = await self._source.list_goals(status=GoalStatus.COMPLETED)
        committed = sum(
            (
                g.target_amount for g in completed
                if g.is_manual and g.completed_at and month.contains(g.completed_at.date())
            ),
            Decimal("0"),
        )
        return max(profit - committed, Decimal("0"))

    # =========================================================================
    # INTENTS
    # =========================================================================

    async def apply_intent(self, intent: GoalIntent) -> Optional[Goal]:
        """
        Execute an extracted intent.

        Returns the created or updated goal, or None for an unrecognized one.

        Raises:
            GoalNotFoundError: An update names no active goal
        """
        if isinstance(intent, CreateGoalIntent):
            draft = GoalDraft(**intent.model_dump(exclude={"kind"}, exclude_none=True))
            return await self.create_goal(draft)

        if isinstance(intent, UpdateGoalIntent):
            goal = await self.find_goal(intent.goal_title)
            changes = intent.changes()
            if not changes:
                return goal
            return await self.update_goal(goal.id, changes)

        if isinstance(intent, UnrecognizedIntent):
            self._logger.info("goal_intent_unrecognized", message=intent.message)
        return None

    async def find_goal(self, title_text: str) -> Goal:
        """First active goal (by deadline) whose title contains the text."""
        needle = title_text.casefold()
        for goal in await self._source.list_goals(status=GoalStatus.ACTIVE):
            if needle in goal.title.casefold():
                return goal
        raise GoalNotFoundError(f"No active goal matching '{title_text}'")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _completion_fields(
        self,
        goal: Goal,
        new_amount: Decimal,
        target: Decimal,
    ) -> dict[str, Any]:
        """Status change implied by reaching the target."""
        if new_amount >= target and goal.status == GoalStatus.ACTIVE:
            return {"status": GoalStatus.COMPLETED, "completed_at": self._clock()}
        return {}

    async def _log_progress(self, before: Goal, after: Goal, source: str) -> None:
        if not self._audit_logger:
            return
        await self._audit_logger.log_goal_progress(
            goal_id=after.id,
            previous_amount=before.current_amount,
            new_amount=after.current_amount,
            source=source,
        )
        if after.status == GoalStatus.COMPLETED and before.status != GoalStatus.COMPLETED:
            await self._audit_logger.log_goal_completed(
                goal_id=after.id,
                title=after.title,
                current_amount=after.current_amount,
            )
