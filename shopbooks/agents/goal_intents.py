"""
Goal Intent Extraction

Turns a shop owner's message ("I want to make 50k profit by end of March")
into a GoalIntent the goal service can execute.

CRITICAL BOUNDARIES:
- CAN: Read the message and fill in the fields it states
- CANNOT: Write anything. The goal service decides what happens.
- CANNOT: Invent amounts or dates the message doesn't contain
- MUST: Return UnrecognizedIntent when unsure

The LLM is a TRANSLATOR, not an ORACLE.

DESIGN DECISION: Extraction is a strategy behind GoalIntentStrategy so the
goal engine never depends on a model vendor. Tests plug in a fake model.
"""

import json
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from shopbooks.audit.logger import AuditLogger
from shopbooks.config import GeminiSettings, get_settings
from shopbooks.models.goal import MetricType
from shopbooks.models.intent import (
    CreateGoalIntent,
    GoalIntent,
    UnrecognizedIntent,
    goal_intent_adapter,
)


class GoalIntentStrategy(ABC):
    """Anything that can read a message and return a GoalIntent."""

    @abstractmethod
    async def extract(self, message: str) -> GoalIntent:
        """
        Extract one intent from a free-text message.

        Args:
            message: What the user typed

        Returns:
            Exactly one GoalIntent variant. Never raises for bad input;
            unreadable messages become UnrecognizedIntent.
        """
        pass


class GeminiGoalIntentAgent(GoalIntentStrategy):
    """
    Gemini-backed intent extraction.

    The model is asked for a single JSON object, which is validated into
    the GoalIntent union. Anything that doesn't validate is Unrecognized.
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_target: Optional[Decimal] = None,
    ):
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger()
        if max_target is None:
            max_target = Decimal(str(get_settings().app.max_goal_target))
        self._max_target = max_target

        if model is None:
            settings = settings or get_settings().gemini
            model = self._configure_genai(settings)
        self._model = model

    @staticmethod
    def _configure_genai(settings: GeminiSettings):
        """Configure Google Generative AI."""
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    def build_prompt(self, message: str, today: Optional[date] = None) -> str:
        today = today or date.today()
        metrics = ", ".join(m.value for m in MetricType)
        return f"""You read messages from a small shop owner and turn goal requests into JSON.

Today is {today.isoformat()}.

Message:
{message}

Respond with ONLY one JSON object, in one of these shapes:

Create a goal:
{{"kind": "create_goal", "title": "short title", "target_amount": 50000, "metric_type": "net_profit", "deadline": "YYYY-MM-DD or null"}}

Change an existing goal:
{{"kind": "update_goal", "goal_title": "words from the goal's title", "target_amount": 60000, "deadline": "YYYY-MM-DD or null", "new_title": null, "status": null}}

Anything else:
{{"kind": "unrecognized", "message": "why"}}

metric_type is one of: {metrics}

Important:
- Amounts are in Indian Rupees. "50k" is 50000, "1.5 lakh" is 150000
- Only use numbers and dates that appear in the message
- If unsure, use kind "unrecognized"."""

    async def extract(self, message: str) -> GoalIntent:
        intent = await self._extract(message)
        if self._audit_logger:
            await self._audit_logger.log_intent_extracted(
                intent_kind=intent.kind,
                message_length=len(message),
            )
        return intent

    async def _extract(self, message: str) -> GoalIntent:
        if not message.strip():
            return UnrecognizedIntent(message="Empty message")

        try:
            response = await self._model.generate_content_async(self.build_prompt(message))
            text = response.text.strip()
        except Exception as e:
            self._logger.warning("intent_model_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                )
            return UnrecognizedIntent(message="Could not reach the assistant")

        data = parse_json_object(text)
        if data is None:
            return UnrecognizedIntent(message="No JSON in model response")

        # Models write "null" for fields they leave out
        data = {k: v for k, v in data.items() if v is not None and v != "null"}
        try:
            intent = goal_intent_adapter.validate_python(data)
        except ValidationError as e:
            self._logger.info("intent_rejected", errors=e.error_count())
            return UnrecognizedIntent(message="Model response didn't match a goal request")

        target = getattr(intent, "target_amount", None)
        if target is not None and target > self._max_target:
            return UnrecognizedIntent(message=f"Target {target} is larger than allowed")

        is_product_goal = (
            isinstance(intent, CreateGoalIntent)
            and intent.metric_type == MetricType.PRODUCT_SALES
        )
        if is_product_goal and not intent.product_id:
            return UnrecognizedIntent(message="Product goals need a product")

        return intent


def parse_json_object(text: str) -> Optional[dict]:
    """The JSON object between the first '{' and the last '}', if any."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
