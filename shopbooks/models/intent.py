"""
Goal Intent Models

What a free-text goal request ("set a goal of 50k profit by March") turns
into. The extraction strategy returns exactly one of these variants; the
goal service executes it. Neither side knows how the other works.

DESIGN DECISION: A tagged union on `kind` instead of a loose dict. The
service matches on the variant and never has to guess which keys exist.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from shopbooks.models.goal import GoalStatus, MetricType, RecurrenceType


class CreateGoalIntent(BaseModel):
    """Create a new goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Literal["create_goal"] = "create_goal"
    title: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., gt=0)
    metric_type: MetricType = MetricType.NET_PROFIT
    deadline: Optional[date] = None
    product_id: Optional[str] = None
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None


class UpdateGoalIntent(BaseModel):
    """
    Change an existing goal, found by (part of) its title.

    Only the fields that are set are changed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Literal["update_goal"] = "update_goal"
    goal_title: str = Field(..., min_length=1, description="Search text matched against titles")
    new_title: Optional[str] = Field(default=None, max_length=200)
    target_amount: Optional[Decimal] = Field(default=None, gt=0)
    deadline: Optional[date] = None
    status: Optional[GoalStatus] = None

    def changes(self) -> dict:
        """Field updates in Goal terms, unset ones left out."""
        fields = {
            "title": self.new_title,
            "target_amount": self.target_amount,
            "deadline": self.deadline,
            "status": self.status,
        }
        return {k: v for k, v in fields.items() if v is not None}


class UnrecognizedIntent(BaseModel):
    """The message wasn't a goal request (or couldn't be understood)."""

    kind: Literal["unrecognized"] = "unrecognized"
    message: str = ""


GoalIntent = Annotated[
    Union[CreateGoalIntent, UpdateGoalIntent, UnrecognizedIntent],
    Field(discriminator="kind"),
]

goal_intent_adapter: TypeAdapter = TypeAdapter(GoalIntent)
