"""
Tests for component wiring.
"""

import pytest
from decimal import Decimal

from shopbooks.agents import GoalIntentStrategy
from shopbooks.models.intent import CreateGoalIntent
from shopbooks.orchestrator import create_app_components
from shopbooks.services.storage.memory import InMemoryDataSource


class CannedAgent(GoalIntentStrategy):
    async def extract(self, message):
        return CreateGoalIntent(title="Savings", target_amount=Decimal("5000"))


class TestCreateAppComponents:
    """Tests for the factory."""

    def test_in_memory_without_storage(self):
        """Test the in-memory backend is used when storage is off."""
        components = create_app_components(use_storage=False, intent_agent=CannedAgent())
        assert isinstance(components.data_source, InMemoryDataSource)
        assert components.sheets_client is None

    @pytest.mark.asyncio
    async def test_services_share_the_backend(self):
        """Test an intent executed through the goal service is visible to the briefing."""
        source = InMemoryDataSource()
        components = create_app_components(data_source=source, intent_agent=CannedAgent())

        intent = await components.intent_agent.extract("save 5000")
        goal = await components.goal_service.apply_intent(intent)

        assert await source.get_goal(goal.id) is not None
        briefing = await components.briefing_service.generate()
        assert [g.title for g in briefing.goals] == ["Savings"]

    @pytest.mark.asyncio
    async def test_ledger_service_is_wired(self):
        """Test the ledger service writes to the same backend."""
        source = InMemoryDataSource()
        components = create_app_components(data_source=source, intent_agent=CannedAgent())

        await components.ledger_service.open_account("c1", Decimal("750"))
        view = await components.ledger_service.get_ledger("c1")

        assert view.outstanding == Decimal("750")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
