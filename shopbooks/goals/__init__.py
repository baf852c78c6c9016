"""Goal tracking: metric evaluation, waterfall allocation, lifecycle."""

from shopbooks.goals.evaluator import GoalMetricEvaluator, days_elapsed, effective_range
from shopbooks.goals.service import GoalService
from shopbooks.goals.waterfall import allocate, order_goals, status_message

__all__ = [
    "GoalMetricEvaluator",
    "GoalService",
    "allocate",
    "days_elapsed",
    "effective_range",
    "order_goals",
    "status_message",
]
