"""Approval API routes."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...app import Application


class PendingApprovalResponse(BaseModel):
    """Response model for a pending approval request."""

    request_id: str
    tool_name: str
    command: str
    agent_id: str
    session_id: str
    working_directory: str
    created_at: datetime
    timeout: float


class ApprovalDecisionRequest(BaseModel):
    """Human answer to a pending request."""

    approved: bool
    reason: str | None = None
    remember: bool = True


class ApprovalHistoryResponse(BaseModel):
    """Response model for one recorded decision."""

    tool_name: str
    command: str
    agent_id: str
    session_id: str
    approved: bool
    reason: str
    request_id: str | None
    decided_at: datetime


def create_approvals_router(app: Application) -> APIRouter:
    """Create approvals router."""
    router = APIRouter(prefix="/api/approvals", tags=["approvals"])

    @router.get("/pending", response_model=list[PendingApprovalResponse])
    async def list_pending() -> list[dict]:
        """List requests waiting for a human answer."""
        return [
            {
                "request_id": r.id,
                "tool_name": r.context.tool_name,
                "command": r.context.command,
                "agent_id": r.context.agent_id,
                "session_id": r.context.session_id,
                "working_directory": r.context.working_directory,
                "created_at": r.created_at,
                "timeout": r.timeout,
            }
            for r in app.approval_gate.get_pending_requests()
        ]

    @router.post("/{request_id}")
    async def respond(request_id: str, decision: ApprovalDecisionRequest) -> dict[str, Any]:
        """Answer a pending request."""
        accepted = app.approval_gate.respond(
            request_id, decision.approved, decision.reason, remember=decision.remember
        )
        if not accepted:
            raise HTTPException(status_code=404, detail=f"No pending request {request_id}")
        return {"status": "ok"}

    @router.delete("/cache")
    async def clear_cache() -> dict:
        """Drop every cached decision."""
        app.approval_gate.clear_cache()
        return {"status": "ok"}

    @router.get("/history", response_model=list[ApprovalHistoryResponse])
    async def history(
        agent_id: str | None = Query(None, description="Filter by agent"),
        session_id: str | None = Query(None, description="Filter by session"),
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[dict]:
        """Recent decisions, newest first."""
        records = app.approval_gate.get_history(agent_id=agent_id, session_id=session_id)
        return [
            {
                "tool_name": r.context.tool_name,
                "command": r.context.command,
                "agent_id": r.context.agent_id,
                "session_id": r.context.session_id,
                "approved": r.result.approved,
                "reason": r.result.reason,
                "request_id": r.result.request_id,
                "decided_at": r.result.decided_at,
            }
            for r in reversed(records[-limit:])
        ]

    return router
