"""Agent management API routes."""

from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...agents import IAgent, collect_response
from ...app import Application
from ...errors import InitializationError, UnsupportedAgentTypeError
from ...models import AgentConfiguration, Message, MessageRole


class CreateAgentRequest(BaseModel):
    """Request model for creating an agent."""

    agent_id: str = Field(min_length=1)
    name: str
    kind: str
    working_directory: str = "."
    settings: dict[str, Any] = Field(default_factory=dict)


class AgentStatusResponse(BaseModel):
    """Response model for agent status."""

    agent_id: str
    kind: str
    status: str
    last_activity: datetime | None
    healthy: bool
    capabilities: dict[str, Any] | None
    metadata: dict[str, Any]


class SendMessageRequest(BaseModel):
    """Request model for sending a message to an agent."""

    content: str
    session_id: str = ""


class MessageResponse(BaseModel):
    """Response model for a complete agent response."""

    message_id: str
    content: str
    type: str
    stop_reason: str | None
    error: str | None
    tool_calls: list[dict[str, Any]]


def _status(agent: IAgent) -> dict:
    info = agent.get_status()
    return {
        "agent_id": info.agent_id,
        "kind": info.kind.value,
        "status": info.status.value,
        "last_activity": info.last_activity,
        "healthy": info.healthy,
        "capabilities": asdict(info.capabilities) if info.capabilities else None,
        "metadata": info.metadata,
    }


def create_agents_router(app: Application) -> APIRouter:
    """Create agents router."""
    router = APIRouter(prefix="/api/agents", tags=["agents"])

    def get_agent(agent_id: str) -> IAgent:
        agent = app.registry.find(agent_id)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"Agent {agent_id} not found")
        return agent

    @router.post("", response_model=AgentStatusResponse, status_code=201)
    async def create_agent(request: CreateAgentRequest) -> dict:
        """Create, initialize and register an agent."""
        config = AgentConfiguration(
            agent_id=request.agent_id,
            name=request.name,
            kind=request.kind,
            working_directory=request.working_directory,
            settings=request.settings,
        )
        try:
            agent = await app.agent_factory.create_agent(config)
        except (UnsupportedAgentTypeError, InitializationError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return _status(agent)

    @router.get("", response_model=list[AgentStatusResponse])
    async def list_agents() -> list[dict]:
        """List registered agents."""
        return [_status(agent) for agent in app.registry.list_agents()]

    @router.get("/{agent_id}", response_model=AgentStatusResponse)
    async def get_agent_status(agent_id: str) -> dict:
        """Get one agent's status."""
        return _status(get_agent(agent_id))

    @router.delete("/{agent_id}")
    async def remove_agent(agent_id: str) -> dict:
        """Shut down and remove an agent."""
        if not await app.registry.remove(agent_id):
            raise HTTPException(status_code=404, detail=f"Agent {agent_id} not found")
        return {"status": "ok"}

    @router.post("/{agent_id}/messages", response_model=MessageResponse)
    async def send_message(agent_id: str, request: SendMessageRequest) -> dict:
        """Send a message and return the complete response."""
        agent = get_agent(agent_id)
        message = Message(
            role=MessageRole.USER, content=request.content, session_id=request.session_id
        )
        try:
            response = await collect_response(agent.send_message(message))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {
            "message_id": response.message_id,
            "content": response.content,
            "type": response.type.value,
            "stop_reason": response.stop_reason,
            "error": response.error,
            "tool_calls": [asdict(call) for call in response.tool_calls],
        }

    return router
