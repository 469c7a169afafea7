"""Application bootstrap and lifecycle management."""

from typing import Protocol

from .agents import AgentFactory, AgentRegistry, ToolDispatcher
from .approval import ApprovalGate
from .config import Settings, resolve_db_path
from .event_bus import EventBus
from .llm import create_provider
from .logging_config import get_logger
from .models import ApprovalSettings
from .orchestration import Orchestrator
from .storage import IStorage, Storage
from .tools import ToolExecutor, default_handlers
from .tracker import ITracker, Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Drop agents, cached approvals and stored audit data."""
        ...


class Application:
    """Owns one orchestration-scoped set of components.

    Nothing here is global: the tool registry, the approval cache and the
    agent registry are created per Application and injected downward.
    """

    def __init__(
        self,
        db_path: str | None = None,
        settings: Settings | None = None,
        provider_factory=create_provider,
    ):
        self._settings = settings or Settings.from_env()
        env_db_path = self._settings.database_url if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._provider_factory = provider_factory

        # Components (initialized in start())
        self._storage: IStorage | None = None
        self._event_bus: EventBus | None = None
        self._tracker: ITracker | None = None
        self._tool_executor: ToolExecutor | None = None
        self._approval_gate: ApprovalGate | None = None
        self._registry: AgentRegistry | None = None
        self._factory: AgentFactory | None = None
        self._orchestrator: Orchestrator | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. EventBus
        self._event_bus = EventBus()
        await self._event_bus.start()

        # 3. Tracker (depends on EventBus + Storage)
        self._tracker = Tracker(self._event_bus, self._storage)
        await self._tracker.start()

        # 4. Tools and approval gate
        self._tool_executor = ToolExecutor(
            default_timeout=self._settings.tool_timeout, event_bus=self._event_bus
        )
        for handler in default_handlers():
            self._tool_executor.register(handler.name, handler)

        self._approval_gate = ApprovalGate(
            settings=ApprovalSettings(
                yolo_mode=self._settings.yolo_mode,
                dangerous_only=self._settings.dangerous_only,
                approval_timeout=self._settings.approval_timeout,
            ),
            event_bus=self._event_bus,
        )
        self._approval_gate.install_defaults()
        logger.info("Tools registered: %s", ", ".join(self._tool_executor.list_tools()))

        # 5. Agents (depend on tools + approval)
        dispatcher = ToolDispatcher(self._tool_executor, self._approval_gate)
        self._registry = AgentRegistry()
        self._factory = AgentFactory(
            self._registry,
            dispatcher,
            self._event_bus,
            provider_factory=self._provider_factory,
            default_command=self._settings.process_command,
            health_interval=self._settings.health_interval,
        )

        # 6. Orchestrator (depends on agent registry)
        self._orchestrator = Orchestrator(self._registry, self._event_bus)
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._registry:
            await self._registry.dispose_all()
            logger.info("Agents disposed")
        if self._tracker:
            await self._tracker.stop()
        if self._event_bus:
            await self._event_bus.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Drop agents, cached approvals and stored audit data."""
        if self._registry:
            await self._registry.dispose_all()
        if self._approval_gate:
            self._approval_gate.clear_cache()
        if self._event_bus:
            await self._event_bus.drain()
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

    def _require(self, component):
        if component is None:
            raise RuntimeError("Application not started")
        return component

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        return self._require(self._storage)

    @property
    def event_bus(self) -> EventBus:
        return self._require(self._event_bus)

    @property
    def tool_executor(self) -> ToolExecutor:
        return self._require(self._tool_executor)

    @property
    def approval_gate(self) -> ApprovalGate:
        return self._require(self._approval_gate)

    @property
    def registry(self) -> AgentRegistry:
        return self._require(self._registry)

    @property
    def agent_factory(self) -> AgentFactory:
        return self._require(self._factory)

    @property
    def orchestrator(self) -> Orchestrator:
        return self._require(self._orchestrator)
