"""Plan execution under sequential, parallel and adaptive strategies."""

import asyncio
import inspect
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from ..agents import IAgentRegistry, collect_response
from ..errors import ConductorError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    BusEvent,
    Message,
    MessageRole,
    OrchestrationPlan,
    OrchestrationProgress,
    OrchestrationRequest,
    OrchestrationResult,
    OrchestrationStep,
    OrchestrationStrategy,
    ResponseType,
    StepResult,
    StepStatus,
    Topic,
)
from .planner import count_dependents, create_plan, topological_batches, validate_plan

logger = get_logger(__name__)

ProgressSink = Callable[[OrchestrationProgress], Any]
StepReorderHook = Callable[
    [list[OrchestrationStep], OrchestrationPlan, list[StepResult]],
    list[OrchestrationStep],
]

SUMMARY_SUCCESS = "Orchestration completed successfully"
SUMMARY_ERRORS = "Orchestration completed with errors"
SUMMARY_CANCELLED = "Orchestration was cancelled"

MAX_FINISHED_EXECUTIONS = 100


def output_key(step_id: str) -> str:
    return f"step_{step_id}_output"


def completed_key(step_id: str) -> str:
    return f"step_{step_id}_completed"


def prioritize_critical_path(
    ready: list[OrchestrationStep],
    plan: OrchestrationPlan,
    results: list[StepResult],
) -> list[OrchestrationStep]:
    """Default adaptive hook: start steps that unblock the most work first."""
    dependents = count_dependents(plan.steps)
    return sorted(ready, key=lambda s: (-dependents.get(s.id, 0), s.order, s.id))


class IOrchestrator(Protocol):
    """Builds plans and executes them."""

    def create_plan(self, request: OrchestrationRequest) -> OrchestrationPlan:
        ...

    async def execute_plan(
        self, plan: OrchestrationPlan, progress: ProgressSink | None = None
    ) -> OrchestrationResult:
        ...

    def cancel_execution(self, execution_id: str) -> bool:
        ...

    def get_execution_status(self, execution_id: str) -> OrchestrationProgress | None:
        ...


@dataclass
class _Execution:
    plan: OrchestrationPlan
    progress: ProgressSink | None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started: float = field(default_factory=time.monotonic)
    step_results: list[StepResult] = field(default_factory=list)
    current_step: str | None = None
    current_agent: str | None = None
    task: asyncio.Task | None = None
    cancel_requested: bool = False
    finished: bool = False
    # Working copy of plan.shared_context; every run starts from the plan's seed
    context: dict = field(default_factory=dict)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def snapshot(self) -> OrchestrationProgress:
        return OrchestrationProgress(
            execution_id=self.id,
            plan_id=self.plan.id,
            steps_completed=len(self.step_results),
            total_steps=len(self.plan.steps),
            current_step=self.current_step,
            current_agent=self.current_agent,
            elapsed=self.elapsed,
            is_finished=self.finished,
        )


class Orchestrator:
    """Executes plans against agents from the registry.

    Each execution works on its own copy of the plan's shared context, so a
    stored plan can be run again without inheriting an earlier run's
    outputs. Step outputs are written under step_<id>_output and
    step_<id>_completed; each step only writes its own keys, so concurrent
    steps never observe each other's partial writes.
    """

    def __init__(
        self,
        registry: IAgentRegistry,
        event_bus: IEventBus | None = None,
        reorder_hook: StepReorderHook = prioritize_critical_path,
    ):
        self._registry = registry
        self._event_bus = event_bus
        self._reorder_hook = reorder_hook
        self._plans: dict[str, OrchestrationPlan] = {}
        self._executions: dict[str, _Execution] = {}

    # Plans

    def create_plan(self, request: OrchestrationRequest) -> OrchestrationPlan:
        plan = create_plan(request)
        self._plans[plan.id] = plan
        return plan

    def get_plan(self, plan_id: str) -> OrchestrationPlan | None:
        return self._plans.get(plan_id)

    # Executions

    def cancel_execution(self, execution_id: str) -> bool:
        """Cancel a running execution; it then returns an unsuccessful result."""
        execution = self._executions.get(execution_id)
        if execution is None or execution.finished or execution.task is None:
            return False
        execution.cancel_requested = True
        execution.task.cancel()
        logger.info("Cancellation requested for execution %s", execution_id)
        return True

    def get_execution_status(self, execution_id: str) -> OrchestrationProgress | None:
        execution = self._executions.get(execution_id)
        return execution.snapshot() if execution else None

    def list_executions(self) -> list[OrchestrationProgress]:
        return [execution.snapshot() for execution in self._executions.values()]

    async def execute_plan(
        self,
        plan: OrchestrationPlan,
        progress: ProgressSink | None = None,
        execution_id: str | None = None,
    ) -> OrchestrationResult:
        """Validate plan, then run it under its strategy.

        Raises DependencyCycleError or PlanValidationError before any step
        runs. Step failures are reported in the result, not raised.
        """
        validate_plan(plan)

        execution = _Execution(plan=plan, progress=progress, context=dict(plan.shared_context))
        if execution_id:
            execution.id = execution_id
        self._executions[execution.id] = execution
        self._prune_executions()

        logger.info(
            "Executing plan %s (%s, %s steps) as %s",
            plan.id,
            plan.strategy.value,
            len(plan.steps),
            execution.id,
        )
        self._publish(
            Topic.ORCHESTRATION_STARTED,
            {
                "execution_id": execution.id,
                "plan_id": plan.id,
                "goal": plan.goal,
                "strategy": plan.strategy.value,
                "total_steps": len(plan.steps),
            },
        )

        runner = asyncio.create_task(self._run_strategy(execution))
        execution.task = runner
        cancelled = False
        try:
            await runner
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not execution.cancel_requested or (current and current.cancelling()):
                execution.finished = True
                raise
            cancelled = True
        except Exception as e:
            execution.finished = True
            logger.error("Execution %s failed: %s", execution.id, e, exc_info=True)
            self._publish_completed(execution, False, f"Orchestration failed: {e}")
            raise ConductorError(f"Orchestration failed: {e}") from e

        if cancelled:
            recorded = {r.step_id for r in execution.step_results}
            for step in plan.steps:
                if step.id not in recorded:
                    execution.step_results.append(
                        StepResult(step.id, step.agent_id, StepStatus.CANCELLED)
                    )

        execution.finished = True
        return self._build_result(execution, cancelled)

    def _build_result(self, execution: _Execution, cancelled: bool) -> OrchestrationResult:
        plan = execution.plan
        completed = [r for r in execution.step_results if r.success]
        success = not cancelled and len(completed) == len(plan.steps)
        if cancelled:
            summary = SUMMARY_CANCELLED
        elif success:
            summary = SUMMARY_SUCCESS
        else:
            summary = SUMMARY_ERRORS

        order = {step.id: (step.order, step.id) for step in plan.steps}
        outputs = [
            r.output
            for r in sorted(completed, key=lambda r: order[r.step_id])
            if r.output
        ]

        result = OrchestrationResult(
            plan_id=plan.id,
            execution_id=execution.id,
            success=success,
            step_results=list(execution.step_results),
            summary=summary,
            final_output="\n\n".join(outputs),
            total_duration=execution.elapsed,
            shared_context=dict(execution.context),
        )
        logger.info("Execution %s finished: %s", execution.id, summary)
        self._publish_completed(execution, success, summary)
        return result

    async def _run_strategy(self, execution: _Execution) -> None:
        strategy = execution.plan.strategy
        if strategy == OrchestrationStrategy.SEQUENTIAL:
            await self._run_sequential(execution)
        elif strategy == OrchestrationStrategy.PARALLEL:
            await self._run_parallel(execution)
        else:
            await self._run_adaptive(execution)

    async def _run_sequential(self, execution: _Execution) -> None:
        """Strict ascending order; the first failure skips everything after it."""
        failed = False
        for step in sorted(execution.plan.steps, key=lambda s: (s.order, s.id)):
            if failed:
                await self._record(
                    execution, self._skipped(step, "Skipped after an earlier step failed")
                )
                continue
            result = await self._run_step(execution, step)
            failed = not result.success

    async def _run_parallel(self, execution: _Execution) -> None:
        """Topological batches; a failed batch skips all later batches."""
        failed = False
        for batch in topological_batches(execution.plan.steps):
            if failed:
                for step in batch:
                    await self._record(
                        execution, self._skipped(step, "Skipped after an earlier batch failed")
                    )
                continue

            results = await self._run_batch(execution, batch)
            failed = any(not r.success for r in results)

    async def _run_adaptive(self, execution: _Execution) -> None:
        """Ready-set scheduling with a reorder hook between rounds.

        Unlike parallel, a failure only skips the steps that depend on it;
        independent branches keep running.
        """
        plan = execution.plan
        pending = {step.id: step for step in plan.steps}
        statuses: dict[str, StepStatus] = {}

        while pending:
            # Cascade: anything depending on a finished-but-not-completed step is skipped
            blocked = [
                step
                for step in pending.values()
                if any(
                    d in statuses and statuses[d] != StepStatus.COMPLETED
                    for d in step.depends_on
                )
            ]
            for step in sorted(blocked, key=lambda s: (s.order, s.id)):
                del pending[step.id]
                statuses[step.id] = StepStatus.SKIPPED
                await self._record(
                    execution, self._skipped(step, "Skipped because a dependency did not complete")
                )
            if blocked:
                continue

            ready = [
                step
                for step in pending.values()
                if all(statuses.get(d) == StepStatus.COMPLETED for d in step.depends_on)
            ]
            if not ready:
                break

            for result in await self._run_batch(execution, self._reorder(ready, execution)):
                statuses[result.step_id] = result.status
                pending.pop(result.step_id, None)

        for step in sorted(pending.values(), key=lambda s: (s.order, s.id)):
            await self._record(execution, self._skipped(step, "Dependencies were never satisfied"))

    def _reorder(
        self, ready: list[OrchestrationStep], execution: _Execution
    ) -> list[OrchestrationStep]:
        """Apply the hook; ready steps it leaves out wait for the next round."""
        fallback = sorted(ready, key=lambda s: (s.order, s.id))
        try:
            proposed = self._reorder_hook(list(ready), execution.plan, list(execution.step_results))
        except Exception as e:
            logger.error("Step reorder hook failed: %s", e, exc_info=True)
            return fallback

        ready_ids = {step.id for step in ready}
        chosen: list[OrchestrationStep] = []
        for step in proposed or []:
            if step.id in ready_ids and step not in chosen:
                chosen.append(step)
        return chosen or fallback

    async def _run_batch(
        self, execution: _Execution, batch: list[OrchestrationStep]
    ) -> list[StepResult]:
        """Run parallel-eligible steps concurrently, then the rest one by one."""
        concurrent = [step for step in batch if step.parallel]
        serial = [step for step in batch if not step.parallel]

        results = list(
            await asyncio.gather(*[self._run_step(execution, step) for step in concurrent])
        )
        for step in serial:
            results.append(await self._run_step(execution, step))
        return results

    async def _run_step(self, execution: _Execution, step: OrchestrationStep) -> StepResult:
        plan = execution.plan
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        execution.current_step = step.id
        execution.current_agent = step.agent_id

        def result(status: StepStatus, output: str = "", error: str | None = None) -> StepResult:
            return StepResult(
                step_id=step.id,
                agent_id=step.agent_id,
                status=status,
                output=output,
                error=error,
                started_at=started_at,
                duration=time.monotonic() - started,
            )

        agent = self._registry.find(step.agent_id)
        if agent is None:
            outcome = result(StepStatus.FAILED, error=f"Agent {step.agent_id} not found")
        elif not all(execution.context.get(completed_key(d)) is True for d in step.depends_on):
            outcome = result(StepStatus.FAILED, error="Dependencies not satisfied")
        else:
            message = Message(
                role=MessageRole.USER,
                content=self._compose_task(plan, step, execution.context),
                session_id=plan.id,
                metadata={"plan_id": plan.id, "step_id": step.id},
            )
            logger.info(
                "Step %s -> agent %s",
                step.id,
                step.agent_id,
                extra={"execution_id": execution.id, "agent_id": step.agent_id},
            )
            try:
                response = await asyncio.wait_for(
                    collect_response(agent.send_message(message)), step.timeout
                )
            except asyncio.TimeoutError:
                outcome = result(
                    StepStatus.TIMED_OUT, error=f"Step timed out after {step.timeout:g} seconds"
                )
            except asyncio.CancelledError:
                await self._record(execution, result(StepStatus.CANCELLED, error="Step was cancelled"))
                raise
            except Exception as e:
                logger.error("Step %s failed: %s", step.id, e, exc_info=True)
                outcome = result(StepStatus.FAILED, error=f"Unexpected error: {e}")
            else:
                if response.type == ResponseType.ERROR:
                    outcome = result(StepStatus.FAILED, error=response.error or response.content)
                else:
                    execution.context[output_key(step.id)] = response.content
                    execution.context[completed_key(step.id)] = True
                    outcome = result(StepStatus.COMPLETED, output=response.content)

        if not outcome.success:
            logger.warning(
                "Step %s %s: %s",
                step.id,
                outcome.status.value,
                outcome.error,
                extra={"execution_id": execution.id, "step_id": step.id},
            )
        await self._record(execution, outcome)
        return outcome

    @staticmethod
    def _compose_task(
        plan: OrchestrationPlan, step: OrchestrationStep, context: dict
    ) -> str:
        parts = [f"Goal: {plan.goal}", "", step.task]
        previous = [
            (dep, context.get(output_key(dep), "")) for dep in step.depends_on
        ]
        if previous:
            parts.append("")
            parts.append("Results from previous steps:")
            for dep, output in previous:
                parts.append(f"[step {dep}]\n{output}")
        return "\n".join(parts)

    @staticmethod
    def _skipped(step: OrchestrationStep, reason: str) -> StepResult:
        return StepResult(step.id, step.agent_id, StepStatus.SKIPPED, error=reason)

    async def _record(self, execution: _Execution, result: StepResult) -> None:
        execution.step_results.append(result)
        self._publish(
            Topic.STEP_COMPLETED,
            {
                "execution_id": execution.id,
                "plan_id": execution.plan.id,
                "step_id": result.step_id,
                "result": result.to_dict(),
            },
        )

        if execution.progress is None:
            return
        snapshot = execution.snapshot()
        snapshot.current_step = result.step_id
        snapshot.current_agent = result.agent_id
        try:
            outcome = execution.progress(snapshot)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error("Progress sink failed: %s", e, exc_info=True)

    def _publish_completed(self, execution: _Execution, success: bool, summary: str) -> None:
        self._publish(
            Topic.ORCHESTRATION_COMPLETED,
            {
                "execution_id": execution.id,
                "plan_id": execution.plan.id,
                "success": success,
                "summary": summary,
                "total_duration": execution.elapsed,
            },
        )

    def _publish(self, topic: Topic, payload: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(BusEvent(topic=topic, payload=payload, source="orchestrator"))

    def _prune_executions(self) -> None:
        finished = [e.id for e in self._executions.values() if e.finished]
        for execution_id in finished[: max(len(finished) - MAX_FINISHED_EXECUTIONS, 0)]:
            del self._executions[execution_id]
