"""Orchestration API routes."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...app import Application
from ...errors import PlanValidationError
from ...models import (
    OrchestrationPlan,
    OrchestrationRequest,
    OrchestrationStep,
    OrchestrationStrategy,
)


class StepSpec(BaseModel):
    """Explicit step in a plan request."""

    id: str
    agent_id: str
    task: str
    order: int | None = None
    depends_on: list[str] = Field(default_factory=list)
    timeout: float = Field(300.0, gt=0)
    parallel: bool = True


class CreatePlanRequest(BaseModel):
    """Request model for plan creation."""

    goal: str
    agent_ids: list[str]
    strategy: OrchestrationStrategy = OrchestrationStrategy.SEQUENTIAL
    steps: list[StepSpec] | None = None
    required_agents: list[str] | None = None
    max_steps: int = Field(10, ge=1, le=100)


class PlanResponse(BaseModel):
    """Response model for a plan."""

    id: str
    goal: str
    strategy: str
    steps: list[dict[str, Any]]
    required_agents: list[str]
    created_at: datetime


class ExecuteRequest(BaseModel):
    """Request model for executing a stored plan."""

    plan_id: str
    execution_id: str | None = None


class ResultResponse(BaseModel):
    """Response model for an orchestration result."""

    plan_id: str
    execution_id: str
    success: bool
    summary: str
    final_output: str
    total_duration: float
    step_results: list[dict[str, Any]]
    shared_context: dict[str, Any]


class ProgressResponse(BaseModel):
    """Response model for execution progress."""

    execution_id: str
    plan_id: str
    steps_completed: int
    total_steps: int
    percent_complete: float
    current_step: str | None
    current_agent: str | None
    elapsed: float
    is_finished: bool


def _plan(plan: OrchestrationPlan) -> dict:
    return {
        "id": plan.id,
        "goal": plan.goal,
        "strategy": plan.strategy.value,
        "steps": [
            {
                "id": s.id,
                "order": s.order,
                "agent_id": s.agent_id,
                "task": s.task,
                "depends_on": s.depends_on,
                "timeout": s.timeout,
                "parallel": s.parallel,
            }
            for s in plan.steps
        ],
        "required_agents": sorted(plan.required_agents),
        "created_at": plan.created_at,
    }


def create_orchestration_router(app: Application) -> APIRouter:
    """Create orchestration router."""
    router = APIRouter(prefix="/api/orchestrations", tags=["orchestration"])

    @router.post("/plans", response_model=PlanResponse, status_code=201)
    async def create_plan(request: CreatePlanRequest) -> dict:
        """Create and validate a plan."""
        steps = None
        if request.steps is not None:
            steps = [
                OrchestrationStep(
                    id=spec.id,
                    order=spec.order if spec.order is not None else i,
                    agent_id=spec.agent_id,
                    task=spec.task,
                    depends_on=list(spec.depends_on),
                    timeout=spec.timeout,
                    parallel=spec.parallel,
                )
                for i, spec in enumerate(request.steps, start=1)
            ]
        try:
            plan = app.orchestrator.create_plan(
                OrchestrationRequest(
                    goal=request.goal,
                    agent_ids=request.agent_ids,
                    strategy=request.strategy,
                    steps=steps,
                    required_agents=(
                        set(request.required_agents)
                        if request.required_agents is not None
                        else None
                    ),
                    max_steps=request.max_steps,
                )
            )
        except PlanValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _plan(plan)

    @router.post("/execute", response_model=ResultResponse)
    async def execute_plan(request: ExecuteRequest) -> dict:
        """Execute a stored plan and wait for its result."""
        plan = app.orchestrator.get_plan(request.plan_id)
        if plan is None:
            raise HTTPException(status_code=404, detail=f"Plan {request.plan_id} not found")
        try:
            result = await app.orchestrator.execute_plan(
                plan, execution_id=request.execution_id
            )
        except PlanValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {
            "plan_id": result.plan_id,
            "execution_id": result.execution_id,
            "success": result.success,
            "summary": result.summary,
            "final_output": result.final_output,
            "total_duration": result.total_duration,
            "step_results": [r.to_dict() for r in result.step_results],
            "shared_context": result.shared_context,
        }

    @router.get("/{execution_id}", response_model=ProgressResponse)
    async def get_execution_status(execution_id: str) -> dict:
        """Get progress of an execution."""
        progress = app.orchestrator.get_execution_status(execution_id)
        if progress is None:
            raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
        return {
            "execution_id": progress.execution_id,
            "plan_id": progress.plan_id,
            "steps_completed": progress.steps_completed,
            "total_steps": progress.total_steps,
            "percent_complete": progress.percent_complete,
            "current_step": progress.current_step,
            "current_agent": progress.current_agent,
            "elapsed": progress.elapsed,
            "is_finished": progress.is_finished,
        }

    @router.post("/{execution_id}/cancel")
    async def cancel_execution(execution_id: str) -> dict:
        """Cancel a running execution."""
        if not app.orchestrator.cancel_execution(execution_id):
            raise HTTPException(
                status_code=404, detail=f"No running execution {execution_id}"
            )
        return {"status": "ok"}

    return router
