"""Tests for the dependency graph and execution planner."""

import pytest

from astra_stack.config.models import Component, ExecutionMode
from astra_stack.config.dependency_graph import DependencyGraph
from astra_stack.orchestrator.planner import ExecutionPlan, ExecutionPlanner, Step
from astra_stack.utils.errors import ConfigurationError


@pytest.fixture
def delayed_components():
    return [
        Component(name="shim", port=7777, startup_delay=10),
        Component(name="agent", port=8080, startup_delay=15, depends_on=frozenset({"shim"})),
        Component(name="rpa", port=8081, startup_delay=20, depends_on=frozenset({"agent"})),
    ]


class TestDependencyGraph:
    """Test dependency graph queries."""

    def test_direct_dependencies(self, components):
        graph = DependencyGraph.from_components(components)
        assert graph.get_dependencies("agent") == {"shim"}
        assert graph.get_dependencies("shim") == set()
        assert graph.get_dependencies("unknown") == set()

    def test_waves_chain(self, components):
        waves = DependencyGraph.from_components(components).get_deployment_waves()
        assert waves == [["shim"], ["agent"], ["rpa"]]

    def test_waves_keep_registry_order(self):
        graph = DependencyGraph.from_components([
            Component(name="db", port=5432),
            Component(name="cache", port=6379),
            Component(name="api", port=8000, depends_on=frozenset({"db", "cache"})),
            Component(name="worker", port=8001, depends_on=frozenset({"db"})),
        ])
        assert graph.get_deployment_waves() == [["db", "cache"], ["api", "worker"]]

    def test_stop_order_is_reversed(self, components):
        assert DependencyGraph.from_components(components).get_stop_order() == ["rpa", "agent", "shim"]

    def test_cycle_detection(self):
        graph = DependencyGraph.from_components([
            Component(name="a", port=1001, depends_on=frozenset({"c"})),
            Component(name="b", port=1002, depends_on=frozenset({"a"})),
            Component(name="c", port=1003, depends_on=frozenset({"b"})),
        ])
        cycle = graph.detect_circular_dependencies()
        assert cycle is not None
        assert cycle[0] == cycle[-1]


class TestSequentialPlan:
    """Test sequential planning."""

    def test_one_step_per_component(self, delayed_components):
        plan = ExecutionPlanner().plan(delayed_components, ExecutionMode.SEQUENTIAL)
        assert plan.mode == ExecutionMode.SEQUENTIAL
        assert [step.names() for step in plan.steps] == [["shim"], ["agent"], ["rpa"]]
        assert all(not step.concurrent for step in plan.steps)

    def test_last_step_has_no_delay(self, delayed_components):
        plan = ExecutionPlanner().plan(delayed_components, ExecutionMode.SEQUENTIAL)
        assert [step.delay_after for step in plan.steps] == [10, 15, 0]
        assert plan.estimated_delay() == 25

    def test_sequential_plan_respects_dependencies(self, delayed_components):
        plan = ExecutionPlanner().plan(delayed_components, ExecutionMode.SEQUENTIAL)
        assert plan.respects_dependencies


class TestParallelPlan:
    """Test parallel planning."""

    def test_single_concurrent_step(self, delayed_components):
        plan = ExecutionPlanner().plan(delayed_components, ExecutionMode.PARALLEL)
        assert len(plan.steps) == 1
        assert plan.steps[0].concurrent
        assert plan.steps[0].names() == ["shim", "agent", "rpa"]
        assert plan.steps[0].delay_after == 0
        assert plan.get_total_components() == 3

    def test_dependencies_are_flagged(self, delayed_components, caplog):
        with caplog.at_level("WARNING"):
            plan = ExecutionPlanner().plan(delayed_components, ExecutionMode.PARALLEL)
        assert not plan.respects_dependencies
        assert "ignores declared dependencies" in caplog.text

    def test_dependency_waves(self, delayed_components):
        plan = ExecutionPlanner().plan(
            delayed_components, ExecutionMode.PARALLEL, respect_dependencies=True
        )
        assert [step.names() for step in plan.steps] == [["shim"], ["agent"], ["rpa"]]
        assert all(step.concurrent for step in plan.steps)
        assert plan.respects_dependencies


class TestPlanValidation:
    """Test malformed plans."""

    def test_empty_stack(self):
        with pytest.raises(ConfigurationError, match="empty"):
            ExecutionPlanner().plan([], ExecutionMode.SEQUENTIAL)

    def test_duplicate_component_in_plan(self, components):
        planner = ExecutionPlanner()
        plan = ExecutionPlan(
            mode=ExecutionMode.PARALLEL,
            steps=[Step(number=1, components=(components[0], components[0]), concurrent=True)]
        )
        with pytest.raises(ConfigurationError, match="more than once"):
            planner._check_plan(plan, components[:1])

    def test_missing_component_in_plan(self, components):
        plan = ExecutionPlan(
            mode=ExecutionMode.SEQUENTIAL,
            steps=[Step(number=1, components=(components[0],))]
        )
        with pytest.raises(ConfigurationError, match="missing"):
            ExecutionPlanner()._check_plan(plan, components)

    def test_stop_plan(self, components):
        assert [c.name for c in ExecutionPlanner().plan_stop(components)] == ["rpa", "agent", "shim"]
        assert ExecutionPlanner().plan_stop([]) == []
