"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from conductor.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus():
    """Create EventBus without a dispatcher; tests drain it explicitly."""
    from conductor.event_bus import EventBus

    return EventBus()


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from conductor.tracker import Tracker

    return Tracker(event_bus=event_bus, storage=storage)


@pytest.fixture
def tool_executor(event_bus):
    """ToolExecutor with the built-in handlers registered."""
    from conductor.tools import ToolExecutor, default_handlers

    executor = ToolExecutor(default_timeout=5.0, event_bus=event_bus)
    for handler in default_handlers():
        executor.register(handler.name, handler)
    return executor


@pytest.fixture
def approval_gate(event_bus):
    """ApprovalGate with default patterns and a short human timeout."""
    from conductor.approval import ApprovalGate
    from conductor.models import ApprovalSettings

    gate = ApprovalGate(settings=ApprovalSettings(approval_timeout=1.0), event_bus=event_bus)
    gate.install_defaults()
    return gate


@pytest.fixture
def dispatcher(tool_executor, approval_gate):
    """ToolDispatcher wired to the executor and gate."""
    from conductor.agents import ToolDispatcher

    return ToolDispatcher(tool_executor, approval_gate)


@pytest.fixture
def fake_cli_command():
    """Build a command line that runs the fake agent CLI in a given mode."""
    from helpers import FAKE_CLI

    def build(mode: str, *extra: str) -> list[str]:
        return [sys.executable, str(FAKE_CLI), "--mode", mode, *extra]

    return build


@pytest.fixture
def mock_provider():
    """Create mock LLM provider streaming a fixed text response."""
    from helpers import text_frames

    provider = Mock()
    provider.name = "mock"
    provider.stream = Mock(side_effect=lambda *args, **kwargs: text_frames("Test response"))
    provider.close = AsyncMock()
    return provider
