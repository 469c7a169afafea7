"""Creates and initializes agents by kind."""

from ..config import DEFAULT_HEALTH_INTERVAL
from ..errors import InitializationError, UnsupportedAgentTypeError
from ..event_bus import IEventBus
from ..llm import create_provider
from ..logging_config import get_logger
from ..models import AgentConfiguration, AgentKind
from .base import IAgent, ToolDispatcher
from .process_agent import ProcessAgent
from .provider_agent import ProviderAgent, ProviderFactory
from .registry import AgentRegistry

logger = get_logger(__name__)


class AgentFactory:
    """Builds agents, initializes them and registers the ones that come up."""

    def __init__(
        self,
        registry: AgentRegistry,
        dispatcher: ToolDispatcher,
        event_bus: IEventBus | None = None,
        provider_factory: ProviderFactory = create_provider,
        default_command: list[str] | None = None,
        health_interval: float = DEFAULT_HEALTH_INTERVAL,
    ):
        self._registry = registry
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._provider_factory = provider_factory
        self._default_command = default_command
        self._health_interval = health_interval

    def build(self, kind: AgentKind | str) -> IAgent:
        """Construct an uninitialized agent of the given kind."""
        try:
            kind = AgentKind(kind)
        except ValueError:
            raise UnsupportedAgentTypeError(f"Agent type '{kind}' is not supported")

        if kind == AgentKind.PROCESS:
            return ProcessAgent(
                self._dispatcher,
                self._event_bus,
                default_command=self._default_command,
                health_interval=self._health_interval,
            )
        return ProviderAgent(
            self._dispatcher, self._event_bus, provider_factory=self._provider_factory
        )

    async def create_agent(self, config: AgentConfiguration) -> IAgent:
        """Build, initialize and register an agent for config."""
        if config.agent_id in self._registry:
            raise ValueError(f"Agent '{config.agent_id}' is already registered")

        agent = await self._create_unregistered(config)
        self._registry.register(agent)
        return agent

    async def get_or_create(self, config: AgentConfiguration) -> IAgent:
        return await self._registry.get_or_create(config, self._create_unregistered)

    async def _create_unregistered(self, config: AgentConfiguration) -> IAgent:
        agent = self.build(config.kind)
        result = await agent.initialize(config)
        if not result.success:
            await agent.shutdown()
            kind = getattr(config.kind, "value", config.kind)
            raise InitializationError(f"Failed to initialize {kind} agent: {result.error}")
        return agent
