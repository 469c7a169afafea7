"""Registry of live agent instances."""

import asyncio
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger
from ..models import AgentConfiguration
from .base import IAgent

logger = get_logger(__name__)

AgentCreator = Callable[[AgentConfiguration], Awaitable[IAgent]]


class IAgentRegistry(Protocol):
    """Tracks agents by identifier."""

    def register(self, agent: IAgent) -> None:
        ...

    def find(self, agent_id: str) -> IAgent | None:
        ...

    def list_agents(self) -> list[IAgent]:
        ...

    async def remove(self, agent_id: str) -> bool:
        ...


class AgentRegistry:
    """Owns agent instances from initialization until shutdown."""

    def __init__(self):
        self._agents: dict[str, IAgent] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def register(self, agent: IAgent) -> None:
        """Track an initialized agent; a second agent with the same id is refused."""
        existing = self._agents.get(agent.agent_id)
        if existing is not None and existing is not agent:
            raise ValueError(f"Agent '{agent.agent_id}' is already registered")
        self._agents[agent.agent_id] = agent
        logger.info("Registered agent %s (%s)", agent.agent_id, agent.kind.value)

    def find(self, agent_id: str) -> IAgent | None:
        return self._agents.get(agent_id)

    def list_agents(self) -> list[IAgent]:
        return list(self._agents.values())

    async def get_or_create(
        self, config: AgentConfiguration, create: AgentCreator
    ) -> IAgent:
        """Return the agent for config.agent_id, creating it at most once."""
        async with self._lock:
            agent = self._agents.get(config.agent_id)
            if agent is not None:
                return agent
            agent = await create(config)
            self._agents[config.agent_id] = agent
            return agent

    async def remove(self, agent_id: str) -> bool:
        """Shut the agent down and forget it."""
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False
        await agent.shutdown()
        logger.info("Removed agent %s", agent_id)
        return True

    async def dispose_all(self) -> None:
        """Shut down every agent; one failing shutdown does not stop the rest."""
        agents = list(self._agents.values())
        self._agents.clear()
        results = await asyncio.gather(
            *[agent.shutdown() for agent in agents], return_exceptions=True
        )
        for agent, result in zip(agents, results):
            if isinstance(result, Exception):
                logger.error("Error shutting down agent %s: %s", agent.agent_id, result)
