"""
Goal Models for Shopbooks

A goal is a target the shop owner sets ("₹50,000 net profit this month",
"average margin of 25%", "save ₹12,000 for the loan EMI"). Most goals are
measured automatically from sales data; some are updated by hand.

CRITICAL: Goals whose metric is MANUAL_CHECK (and EMI goals) are owned by
the user. The evaluator never recomputes them.

DESIGN DECISION: Completion is monotonic. Once a goal is COMPLETED the engine
never moves it back to ACTIVE, even if the underlying metric later drops.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class MetricType(str, Enum):
    """
    How a goal's current amount is measured.

    Cumulative metrics sum over the tracking window; DAILY_* metrics look
    at the single best day; AVG_* metrics divide by elapsed days.
    """
    NET_PROFIT = "net_profit"
    REVENUE = "revenue"
    SALES_COUNT = "sales_count"
    MANUAL_CHECK = "manual_check"
    CUSTOMER_COUNT = "customer_count"
    GROSS_PROFIT = "gross_profit"
    MARGIN = "margin"
    PRODUCT_SALES = "product_sales"
    DAILY_REVENUE = "daily_revenue"
    DAILY_MARGIN = "daily_margin"
    AVG_MARGIN = "avg_margin"
    AVG_REVENUE = "avg_revenue"
    AVG_PROFIT = "avg_profit"

    @property
    def is_percentage(self) -> bool:
        return self in _PERCENT_METRICS

    @property
    def is_count(self) -> bool:
        return self in _COUNT_METRICS


_PERCENT_METRICS = frozenset({
    MetricType.MARGIN,
    MetricType.DAILY_MARGIN,
    MetricType.AVG_MARGIN,
})

_COUNT_METRICS = frozenset({
    MetricType.SALES_COUNT,
    MetricType.CUSTOMER_COUNT,
})


class GoalStatus(str, Enum):
    """Lifecycle status of a goal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"  # Soft delete


class GoalType(str, Enum):
    """
    Who drives the goal's progress.

    AUTO goals are measured from sales data. EMI goals are fixed savings
    targets (loan instalments) that the owner funds by hand. MANUAL goals
    are ticked off by the owner.
    """
    AUTO = "auto"
    EMI = "emi"
    MANUAL = "manual"


class RecurrenceType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ProgressOperation(str, Enum):
    """Manual progress adjustment operations."""
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class AllocationSource(str, Enum):
    """Where money allocated to a goal came from."""
    SURPLUS = "surplus"
    DAILY_PROFIT = "daily_profit"
    MANUAL = "manual"


# =============================================================================
# GOAL
# =============================================================================

class Goal(BaseModel):
    """
    A stored goal.

    This model is deliberately lenient about cross-field rules (e.g. a
    PRODUCT_SALES goal without product_id) because rows written by older
    versions of the app must still load. GoalDraft enforces them for new goals.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)

    target_amount: Decimal = Field(..., gt=0, description="Target value (INR, %, or count)")
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)

    metric_type: MetricType = MetricType.NET_PROFIT
    goal_type: GoalType = GoalType.AUTO
    status: GoalStatus = GoalStatus.ACTIVE

    start_tracking_date: date = Field(
        default_factory=date.today,
        description="Inclusive lower bound of the measurement window"
    )
    deadline: Optional[date] = None
    product_id: Optional[str] = Field(
        default=None,
        description="Required for PRODUCT_SALES goals"
    )

    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None

    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def is_manual(self) -> bool:
        """True when automation must leave current_amount alone."""
        return (
            self.metric_type == MetricType.MANUAL_CHECK
            or self.goal_type == GoalType.EMI
        )

    @property
    def deadline_sort_key(self) -> tuple:
        """Deadline ascending, goals without a deadline last."""
        return (self.deadline is None, self.deadline or date.max)

    @property
    def is_target_met(self) -> bool:
        return self.current_amount >= self.target_amount

    def is_overdue(self, today: date) -> bool:
        """Past its deadline without being completed ("Expired & Locked")."""
        return (
            self.deadline is not None
            and self.deadline < today
            and self.status != GoalStatus.COMPLETED
        )

    def format_value(self, value: Decimal) -> str:
        """Render a value in the goal's unit."""
        if self.metric_type.is_percentage:
            return f"{value:.1f}%"
        if self.metric_type.is_count:
            return f"{int(value)}"
        return f"₹{value:,.0f}"


class GoalDraft(BaseModel):
    """
    Input for creating a goal.

    Stricter than Goal: cross-field rules are enforced here.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    target_amount: Decimal = Field(..., gt=0)
    metric_type: MetricType = MetricType.NET_PROFIT
    goal_type: GoalType = GoalType.AUTO
    start_tracking_date: Optional[date] = None
    deadline: Optional[date] = None
    product_id: Optional[str] = None
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None

    @model_validator(mode='after')
    def validate_cross_fields(self) -> 'GoalDraft':
        if self.metric_type == MetricType.PRODUCT_SALES and not self.product_id:
            raise ValueError("Product sales goals need a product_id")

        if self.recurrence_type and not self.is_recurring:
            raise ValueError("recurrence_type is only valid for recurring goals")

        if self.is_recurring and not self.recurrence_type:
            raise ValueError("Recurring goals need a recurrence_type")

        if (
            self.deadline
            and self.start_tracking_date
            and self.deadline < self.start_tracking_date
        ):
            raise ValueError("Deadline cannot be before the tracking start date")

        return self


# =============================================================================
# DERIVED RESULTS
# =============================================================================

class GoalEvaluation(BaseModel):
    """
    Outcome of evaluating one goal against the data source.

    persisted is True when the evaluator wrote the goal back.
    skipped_reason is set when the goal could not be measured
    (e.g. a product goal with no product attached).
    """

    goal: Goal
    current_amount: Decimal
    persisted: bool = False
    completed_now: bool = False
    skipped_reason: Optional[str] = None


class WaterfallAllocation(BaseModel):
    """One goal's share of the month's profit pool."""

    goal_id: str
    title: str
    target_amount: Decimal
    deadline: Optional[date] = None
    allocated_amount: Decimal
    remaining_needed: Decimal
    days_left: int
    daily_run_rate: Decimal = Decimal("0")
    is_fully_funded: bool
    status_message: str


class WaterfallSummary(BaseModel):
    """Pool plus the per-goal allocations, in allocation order."""

    pool: Decimal
    allocations: list[WaterfallAllocation] = Field(default_factory=list)

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.allocated_amount for a in self.allocations), Decimal("0"))

    @property
    def unallocated(self) -> Decimal:
        return self.pool - self.total_allocated
