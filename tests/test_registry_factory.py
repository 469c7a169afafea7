"""Tests for AgentRegistry and AgentFactory."""

import asyncio

import pytest
import pytest_asyncio

from conductor.agents import AgentFactory, AgentRegistry, ProcessAgent, ProviderAgent
from conductor.errors import InitializationError, UnsupportedAgentTypeError
from conductor.models import AgentConfiguration, AgentKind, AgentStatus
from helpers import ScriptedAgent


@pytest_asyncio.fixture
async def registry():
    reg = AgentRegistry()
    yield reg
    await reg.dispose_all()


@pytest.fixture
def factory(registry, dispatcher, event_bus, mock_provider):
    return AgentFactory(
        registry,
        dispatcher,
        event_bus,
        provider_factory=lambda settings: mock_provider,
        health_interval=0,
    )


class TestAgentRegistry:
    """Tests for AgentRegistry."""

    def test_register_and_find(self, registry):
        """Registered agents are found by id."""
        agent = ScriptedAgent("a1")
        registry.register(agent)

        assert registry.find("a1") is agent
        assert "a1" in registry
        assert len(registry) == 1
        assert registry.find("missing") is None

    def test_duplicate_id_refused(self, registry):
        """A second agent with the same id is refused."""
        first, second = ScriptedAgent("a1"), ScriptedAgent("a1")
        registry.register(first)

        with pytest.raises(ValueError):
            registry.register(second)

    @pytest.mark.asyncio
    async def test_remove_shuts_down(self, registry):
        """Removing an agent shuts it down."""
        agent = ScriptedAgent("a1")
        registry.register(agent)

        assert await registry.remove("a1")
        assert agent.status == AgentStatus.SHUTDOWN
        assert not await registry.remove("a1")

    @pytest.mark.asyncio
    async def test_get_or_create_once(self, registry):
        """Concurrent get_or_create calls build the agent once."""
        created = []

        async def create(config):
            await asyncio.sleep(0.01)
            created.append(config.agent_id)
            return ScriptedAgent(config.agent_id)

        config = AgentConfiguration(agent_id="a1", name="A", kind=AgentKind.PROVIDER)
        first, second = await asyncio.gather(
            registry.get_or_create(config, create), registry.get_or_create(config, create)
        )

        assert first is second
        assert created == ["a1"]


class TestAgentFactory:
    """Tests for AgentFactory."""

    def test_build_by_kind(self, factory):
        """Each kind maps to its concrete agent."""
        assert isinstance(factory.build(AgentKind.PROCESS), ProcessAgent)
        assert isinstance(factory.build("provider"), ProviderAgent)

    def test_unsupported_kind(self, factory):
        """Unknown kinds raise UnsupportedAgentTypeError."""
        with pytest.raises(UnsupportedAgentTypeError, match="Agent type 'robot' is not supported"):
            factory.build("robot")

    @pytest.mark.asyncio
    async def test_create_registers(self, factory, registry):
        """Successfully initialized agents are registered."""
        config = AgentConfiguration(agent_id="llm", name="LLM", kind=AgentKind.PROVIDER)
        agent = await factory.create_agent(config)

        assert agent.status == AgentStatus.READY
        assert registry.find("llm") is agent

        with pytest.raises(ValueError):
            await factory.create_agent(config)

    @pytest.mark.asyncio
    async def test_failed_initialization_not_registered(self, factory, registry, tmp_path):
        """Agents that fail to initialize are not registered."""
        config = AgentConfiguration(
            agent_id="broken",
            name="Broken",
            kind=AgentKind.PROCESS,
            working_directory=str(tmp_path / "missing"),
        )

        with pytest.raises(InitializationError, match="Failed to initialize process agent"):
            await factory.create_agent(config)
        assert "broken" not in registry

    @pytest.mark.asyncio
    async def test_get_or_create(self, factory):
        """get_or_create returns the same instance for the same id."""
        config = AgentConfiguration(agent_id="llm", name="LLM", kind=AgentKind.PROVIDER)

        first = await factory.get_or_create(config)
        second = await factory.get_or_create(config)

        assert first is second
