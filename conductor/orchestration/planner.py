"""Plan construction and dependency-graph validation."""

from ..errors import DependencyCycleError, PlanValidationError
from ..logging_config import get_logger
from ..models import (
    OrchestrationPlan,
    OrchestrationRequest,
    OrchestrationStep,
    OrchestrationStrategy,
)

logger = get_logger(__name__)

SEQUENTIAL_STEP_TIMEOUT = 300.0
PARALLEL_STEP_TIMEOUT = 600.0


def create_plan(request: OrchestrationRequest) -> OrchestrationPlan:
    """Build and validate a plan for request.

    Explicit steps are used as given; otherwise steps are generated from the
    goal for the requested strategy. Every step agent and every required
    agent must belong to the request's agent pool.
    """
    if not request.goal or not request.goal.strip():
        raise PlanValidationError("Goal cannot be empty")
    if not request.agent_ids:
        raise PlanValidationError("At least one agent is required")

    pool = set(request.agent_ids)
    if request.steps is not None:
        steps = list(request.steps)
    else:
        steps = generate_steps(request)

    if not steps:
        raise PlanValidationError("Plan must contain at least one step")
    if len(steps) > request.max_steps:
        raise PlanValidationError(
            f"Plan has {len(steps)} steps, more than the maximum of {request.max_steps}"
        )

    outside = sorted({step.agent_id for step in steps} - pool)
    if outside:
        raise PlanValidationError(
            f"Steps reference agents outside the pool: {', '.join(outside)}"
        )

    if request.required_agents is not None:
        required = set(request.required_agents)
    else:
        required = {step.agent_id for step in steps}
    missing = sorted(required - pool)
    if missing:
        raise PlanValidationError(
            f"Required agents are not in the pool: {', '.join(missing)}"
        )

    plan = OrchestrationPlan(
        goal=request.goal,
        strategy=request.strategy,
        steps=steps,
        required_agents=required,
    )
    validate_plan(plan)
    logger.info(
        "Created %s plan %s with %s steps", plan.strategy.value, plan.id, len(plan.steps)
    )
    return plan


def generate_steps(request: OrchestrationRequest) -> list[OrchestrationStep]:
    """Derive steps from the goal when the caller gave none."""
    agents = list(request.agent_ids)[: request.max_steps]
    goal = request.goal.strip()

    if request.strategy == OrchestrationStrategy.SEQUENTIAL:
        timeout = request.step_timeout or SEQUENTIAL_STEP_TIMEOUT
        steps = []
        for i, agent_id in enumerate(agents, start=1):
            steps.append(
                OrchestrationStep(
                    id=str(i),
                    order=i,
                    agent_id=agent_id,
                    task=(
                        f"{goal}\n\nYou are step {i} of {len(agents)}. "
                        "Build on the results of the previous steps."
                    ),
                    depends_on=[str(i - 1)] if i > 1 else [],
                    timeout=timeout,
                    parallel=False,
                )
            )
        return steps

    if request.strategy == OrchestrationStrategy.PARALLEL:
        timeout = request.step_timeout or PARALLEL_STEP_TIMEOUT
        return [
            OrchestrationStep(
                id=str(i),
                order=i,
                agent_id=agent_id,
                task=(
                    f"{goal}\n\nWork on this independently; your result will be "
                    f"combined with those of {len(agents) - 1} other agent(s)."
                ),
                timeout=timeout,
            )
            for i, agent_id in enumerate(agents, start=1)
        ]

    # Adaptive: one analysis step, then dependent fan-out
    timeout = request.step_timeout or SEQUENTIAL_STEP_TIMEOUT
    steps = [
        OrchestrationStep(
            id="1",
            order=1,
            agent_id=agents[0],
            task=f"Analyze the following goal and outline an approach:\n\n{goal}",
            timeout=timeout,
        )
    ]
    workers = agents[1:] or agents[:1]
    for i, agent_id in enumerate(workers[: max(request.max_steps - 1, 0)], start=2):
        steps.append(
            OrchestrationStep(
                id=str(i),
                order=i,
                agent_id=agent_id,
                task=f"Using the analysis, carry out your part of the goal:\n\n{goal}",
                depends_on=["1"],
                timeout=timeout,
            )
        )
    return steps


def validate_plan(plan: OrchestrationPlan) -> None:
    """Reject duplicate ids, unknown dependencies and cycles."""
    ids = [step.id for step in plan.steps]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise PlanValidationError(f"Duplicate step ids: {', '.join(duplicates)}")

    known = set(ids)
    for step in plan.steps:
        for dep in step.depends_on:
            if dep not in known:
                raise PlanValidationError(
                    f"Step '{step.id}' depends on unknown step '{dep}'"
                )

    cycle = find_cycle(plan.steps)
    if cycle:
        raise DependencyCycleError(cycle)


def find_cycle(steps: list[OrchestrationStep]) -> list[str] | None:
    """Depth-first search over depends_on edges; returns one cycle path or None."""
    graph = {step.id: list(step.depends_on) for step in steps}
    visited: set[str] = set()
    path: list[str] = []
    on_path: set[str] = set()

    def visit(node: str) -> list[str] | None:
        visited.add(node)
        path.append(node)
        on_path.add(node)
        for dep in graph.get(node, []):
            if dep in on_path:
                return path[path.index(dep):] + [dep]
            if dep not in visited:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        on_path.discard(node)
        return None

    for step in sorted(steps, key=lambda s: (s.order, s.id)):
        if step.id not in visited:
            cycle = visit(step.id)
            if cycle:
                return cycle
    return None


def topological_batches(steps: list[OrchestrationStep]) -> list[list[OrchestrationStep]]:
    """Partition an acyclic step list into dependency layers (Kahn's algorithm)."""
    by_id = {step.id: step for step in steps}
    remaining = {step.id: set(step.depends_on) for step in steps}
    batches: list[list[OrchestrationStep]] = []

    while remaining:
        ready = [step_id for step_id, deps in remaining.items() if not deps]
        if not ready:
            raise DependencyCycleError(sorted(remaining))
        batch = sorted((by_id[i] for i in ready), key=lambda s: (s.order, s.id))
        batches.append(batch)
        for step_id in ready:
            del remaining[step_id]
        for deps in remaining.values():
            deps.difference_update(ready)

    return batches


def count_dependents(steps: list[OrchestrationStep]) -> dict[str, int]:
    """Number of steps that transitively depend on each step."""
    children: dict[str, set[str]] = {step.id: set() for step in steps}
    for step in steps:
        for dep in step.depends_on:
            children.setdefault(dep, set()).add(step.id)

    counts: dict[str, int] = {}

    def descendants(step_id: str) -> set[str]:
        found: set[str] = set()
        stack = list(children.get(step_id, ()))
        while stack:
            current = stack.pop()
            if current not in found:
                found.add(current)
                stack.extend(children.get(current, ()))
        return found

    for step in steps:
        counts[step.id] = len(descendants(step.id))
    return counts
