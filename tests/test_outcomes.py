"""Tests for the outcome state machine and result aggregation."""

import pytest

from astra_stack.config.models import ExecutionMode
from astra_stack.orchestrator.outcomes import (
    DeploymentOutcome,
    OutcomeTable,
    StackResult,
    StackResultKind,
)
from astra_stack.utils.errors import ConfigurationError, OutcomeTransitionError

NAMES = ["shim", "agent", "rpa"]


def bring_up(table, name, healthy=True):
    table.transition(name, DeploymentOutcome.DEPLOYING)
    table.transition(name, DeploymentOutcome.DEPLOYED)
    table.transition(name, DeploymentOutcome.HEALTH_CHECK_PENDING)
    table.transition(
        name,
        DeploymentOutcome.HEALTHY if healthy else DeploymentOutcome.UNHEALTHY,
        None if healthy else "health check timed out after 120s"
    )


class TestOutcomeTable:
    """Test outcome transitions."""

    def test_starts_not_started(self):
        table = OutcomeTable(NAMES)
        assert set(table.snapshot().values()) == {DeploymentOutcome.NOT_STARTED}
        assert table.names() == NAMES

    def test_forward_transitions_are_recorded(self):
        table = OutcomeTable(NAMES)
        bring_up(table, "shim")
        transitions = table.transitions()
        assert [t.current for t in transitions] == [
            DeploymentOutcome.DEPLOYING,
            DeploymentOutcome.DEPLOYED,
            DeploymentOutcome.HEALTH_CHECK_PENDING,
            DeploymentOutcome.HEALTHY,
        ]
        assert transitions[0].previous == DeploymentOutcome.NOT_STARTED
        assert table.get("shim") == DeploymentOutcome.HEALTHY

    def test_deployed_may_skip_probing(self):
        table = OutcomeTable(NAMES)
        table.transition("shim", DeploymentOutcome.DEPLOYING)
        table.transition("shim", DeploymentOutcome.DEPLOYED)
        table.transition("shim", DeploymentOutcome.HEALTHY, "health check skipped")
        assert table.reason("shim") == "health check skipped"

    @pytest.mark.parametrize("path", [
        [DeploymentOutcome.DEPLOYED],
        [DeploymentOutcome.HEALTHY],
        [DeploymentOutcome.DEPLOYING, DeploymentOutcome.DEPLOYING],
        [DeploymentOutcome.DEPLOYING, DeploymentOutcome.DEPLOY_FAILED, DeploymentOutcome.DEPLOYING],
        [DeploymentOutcome.DEPLOYING, DeploymentOutcome.HEALTH_CHECK_PENDING],
    ])
    def test_illegal_transitions(self, path):
        table = OutcomeTable(NAMES)
        with pytest.raises(OutcomeTransitionError):
            for outcome in path:
                table.transition("agent", outcome)

    def test_deploy_cannot_be_issued_twice(self):
        table = OutcomeTable(NAMES)
        bring_up(table, "shim")
        with pytest.raises(OutcomeTransitionError):
            table.transition("shim", DeploymentOutcome.DEPLOYING)

    def test_unknown_component(self):
        with pytest.raises(ConfigurationError):
            OutcomeTable(NAMES).transition("db", DeploymentOutcome.DEPLOYING)

    def test_reset(self):
        table = OutcomeTable(NAMES)
        bring_up(table, "shim")
        table.reset()
        assert table.get("shim") == DeploymentOutcome.NOT_STARTED
        assert table.transitions() == []
        assert table.reasons() == {}

    def test_listener_is_called(self):
        seen = []
        table = OutcomeTable(NAMES, listener=seen.append)
        table.transition("rpa", DeploymentOutcome.DEPLOYING, "backend: docker")
        assert len(seen) == 1
        assert seen[0].component == "rpa"
        assert seen[0].reason == "backend: docker"

    def test_terminal_outcomes(self):
        assert DeploymentOutcome.HEALTHY.is_terminal()
        assert DeploymentOutcome.DEPLOY_FAILED.is_terminal()
        assert not DeploymentOutcome.DEPLOYED.is_terminal()
        assert not DeploymentOutcome.NOT_STARTED.is_terminal()


class TestStackResult:
    """Test result aggregation."""

    def test_all_healthy(self):
        table = OutcomeTable(NAMES)
        for name in NAMES:
            bring_up(table, name)
        result = StackResult.aggregate(table, mode=ExecutionMode.SEQUENTIAL)
        assert result.kind == StackResultKind.ALL_HEALTHY
        assert result.failed == []
        assert result.exit_code == 0
        assert len(result.transitions) == 12

    def test_partial_failure_lists_not_started(self):
        table = OutcomeTable(NAMES)
        bring_up(table, "shim")
        bring_up(table, "agent", healthy=False)
        result = StackResult.aggregate(table)
        assert result.kind == StackResultKind.PARTIAL_FAILURE
        assert result.failed == ["agent", "rpa"]
        assert result.outcomes["rpa"] == DeploymentOutcome.NOT_STARTED
        assert result.reasons["agent"].startswith("health check timed out")
        assert result.exit_code == 1

    def test_total_failure_when_nothing_healthy(self):
        table = OutcomeTable(NAMES)
        table.transition("shim", DeploymentOutcome.DEPLOYING)
        table.transition("shim", DeploymentOutcome.DEPLOY_FAILED, "boom")
        result = StackResult.aggregate(table)
        assert result.kind == StackResultKind.TOTAL_FAILURE
        assert result.failed == NAMES
        assert result.components_with(DeploymentOutcome.DEPLOY_FAILED) == ["shim"]

    def test_planning_failed(self):
        error = ConfigurationError("Cannot plan an empty stack")
        result = StackResult.planning_failed(error, NAMES)
        assert result.kind == StackResultKind.TOTAL_FAILURE
        assert result.error is error
        assert result.failed == NAMES
        assert not result.is_success()
