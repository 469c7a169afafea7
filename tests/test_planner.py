"""Tests for plan creation and validation."""

import pytest

from conductor.errors import DependencyCycleError, PlanValidationError
from conductor.models import (
    OrchestrationPlan,
    OrchestrationRequest,
    OrchestrationStep,
    OrchestrationStrategy,
)
from conductor.orchestration import (
    create_plan,
    find_cycle,
    generate_steps,
    topological_batches,
    validate_plan,
)
from conductor.orchestration.planner import count_dependents


def step(step_id: str, *depends_on: str, agent: str = "a1", order: int | None = None):
    return OrchestrationStep(
        id=step_id,
        order=order if order is not None else ord(step_id[0]),
        agent_id=agent,
        task=f"task {step_id}",
        depends_on=list(depends_on),
    )


class TestCreatePlan:
    """Tests for create_plan()."""

    def test_sequential_generation(self):
        """Sequential plans chain one step per agent."""
        plan = create_plan(
            OrchestrationRequest(goal="Ship it", agent_ids=["a1", "a2", "a3"])
        )

        assert [s.agent_id for s in plan.steps] == ["a1", "a2", "a3"]
        assert [s.depends_on for s in plan.steps] == [[], ["1"], ["2"]]
        assert all(not s.parallel for s in plan.steps)
        assert plan.required_agents == {"a1", "a2", "a3"}

    def test_parallel_generation(self):
        """Parallel plans have independent steps with a longer timeout."""
        plan = create_plan(
            OrchestrationRequest(
                goal="Review", agent_ids=["a1", "a2"], strategy=OrchestrationStrategy.PARALLEL
            )
        )

        assert all(not s.depends_on for s in plan.steps)
        assert all(s.timeout == 600.0 for s in plan.steps)

    def test_adaptive_generation(self):
        """Adaptive plans analyze first, then fan out."""
        steps = generate_steps(
            OrchestrationRequest(
                goal="Fix bug",
                agent_ids=["lead", "w1", "w2"],
                strategy=OrchestrationStrategy.ADAPTIVE,
            )
        )

        assert steps[0].agent_id == "lead"
        assert [s.depends_on for s in steps[1:]] == [["1"], ["1"]]

    def test_max_steps(self):
        """Plans longer than max_steps are rejected."""
        request = OrchestrationRequest(
            goal="g", agent_ids=["a1"], steps=[step("a"), step("b")], max_steps=1
        )
        with pytest.raises(PlanValidationError, match="more than the maximum"):
            create_plan(request)

    @pytest.mark.parametrize(
        "request_kwargs,message",
        [
            ({"goal": " ", "agent_ids": ["a1"]}, "Goal cannot be empty"),
            ({"goal": "g", "agent_ids": []}, "At least one agent"),
            ({"goal": "g", "agent_ids": ["a1"], "steps": []}, "at least one step"),
            (
                {"goal": "g", "agent_ids": ["a1"], "steps": [step("a", agent="zz")]},
                "outside the pool: zz",
            ),
            (
                {"goal": "g", "agent_ids": ["a1"], "required_agents": {"a1", "a9"}},
                "not in the pool: a9",
            ),
        ],
    )
    def test_invalid_requests(self, request_kwargs, message):
        """Invalid requests are rejected with a descriptive message."""
        with pytest.raises(PlanValidationError, match=message):
            create_plan(OrchestrationRequest(**request_kwargs))

    def test_explicit_cycle_rejected(self):
        """Explicit steps forming a cycle are rejected at creation."""
        request = OrchestrationRequest(
            goal="g", agent_ids=["a1"], steps=[step("a", "b"), step("b", "a")]
        )
        with pytest.raises(DependencyCycleError):
            create_plan(request)


class TestValidatePlan:
    """Tests for graph validation."""

    def _plan(self, *steps):
        return OrchestrationPlan(
            goal="g", strategy=OrchestrationStrategy.ADAPTIVE, steps=list(steps)
        )

    def test_two_step_cycle(self):
        """A depends on B and B on A is reported with its path."""
        with pytest.raises(DependencyCycleError) as exc_info:
            validate_plan(self._plan(step("a", "b"), step("b", "a")))

        assert exc_info.value.cycle == ["a", "b", "a"]
        assert str(exc_info.value) == "Dependency cycle detected: a -> b -> a"

    def test_self_dependency(self):
        """A step depending on itself is a cycle."""
        assert find_cycle([step("a", "a")]) == ["a", "a"]

    def test_unknown_dependency(self):
        """Dependencies on unknown steps are rejected."""
        with pytest.raises(PlanValidationError, match="unknown step 'x'"):
            validate_plan(self._plan(step("a", "x")))

    def test_duplicate_ids(self):
        """Duplicate step ids are rejected."""
        with pytest.raises(PlanValidationError, match="Duplicate step ids: a"):
            validate_plan(self._plan(step("a"), step("a")))

    def test_diamond_is_valid(self):
        """Shared dependencies are not cycles."""
        validate_plan(self._plan(step("a"), step("b", "a"), step("c", "a"), step("d", "b", "c")))


class TestTopology:
    """Tests for batching helpers."""

    def test_batches(self):
        """Steps are layered by dependency depth."""
        batches = topological_batches([step("a"), step("b", "a"), step("c", "a"), step("d", "b", "c")])

        assert [[s.id for s in batch] for batch in batches] == [["a"], ["b", "c"], ["d"]]

    def test_count_dependents(self):
        """Dependents are counted transitively."""
        counts = count_dependents([step("a"), step("b", "a"), step("c", "b"), step("d")])

        assert counts == {"a": 2, "b": 1, "c": 0, "d": 0}
