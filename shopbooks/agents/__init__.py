"""
AI Agents Package

Natural-language front ends. Nothing in the goal or ledger engine
imports from here.
"""

from shopbooks.agents.goal_intents import (
    GeminiGoalIntentAgent,
    GoalIntentStrategy,
    parse_json_object,
)

__all__ = [
    "GeminiGoalIntentAgent",
    "GoalIntentStrategy",
    "parse_json_object",
]
