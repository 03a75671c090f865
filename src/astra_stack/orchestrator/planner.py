"""Execution planner turning the registry into ordered steps."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Sequence, Tuple

from astra_stack.config.models import Component, ExecutionMode
from astra_stack.config.dependency_graph import DependencyGraph
from astra_stack.utils.errors import ConfigurationError
from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Step:
    """Components started together.

    A sequential step holds exactly one component; a concurrent step holds
    every component that is launched at the same time.
    """

    number: int
    components: Tuple[Component, ...]
    delay_after: float = 0.0  # seconds before the next step starts
    concurrent: bool = False

    def names(self) -> List[str]:
        """Names of the components in this step."""
        return [component.name for component in self.components]

    def size(self) -> int:
        """Get the number of components in this step."""
        return len(self.components)


@dataclass
class ExecutionPlan:
    """Ordered steps for one run."""

    mode: ExecutionMode
    steps: List[Step]
    respects_dependencies: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def components(self) -> List[Component]:
        """Every planned component in step order."""
        return [component for step in self.steps for component in step.components]

    def get_total_components(self) -> int:
        """Get total number of components in the plan."""
        return sum(step.size() for step in self.steps)

    def estimated_delay(self) -> float:
        """Total inter-step waiting time in seconds."""
        return sum(step.delay_after for step in self.steps)


class ExecutionPlanner:
    """Creates execution and stop plans."""

    def __init__(self):
        """Initialize execution planner."""
        self.logger = get_logger(__name__)

    def plan(
        self,
        components: Sequence[Component],
        mode: ExecutionMode,
        respect_dependencies: bool = False
    ) -> ExecutionPlan:
        """Create an execution plan.

        Sequential mode yields one step per component in registry order, each
        carrying the component's startup delay. Parallel mode yields a single
        step with every component and does no dependency reasoning, unless
        ``respect_dependencies`` asks for dependency waves instead.

        Args:
            components: Components in registry order
            mode: Execution mode for the whole run
            respect_dependencies: Build dependency waves in parallel mode

        Returns:
            ExecutionPlan

        Raises:
            ConfigurationError: If there is nothing to plan or the plan is malformed
        """
        components = list(components)
        if not components:
            raise ConfigurationError("Cannot plan an empty stack")

        if mode == ExecutionMode.SEQUENTIAL:
            plan = self._sequential_plan(components)
        elif respect_dependencies:
            plan = self._wave_plan(components)
        else:
            plan = self._parallel_plan(components)

        self._check_plan(plan, components)

        self.logger.info(
            f"Execution plan created: {plan.mode.value}, {len(plan.steps)} step(s), "
            f"{plan.get_total_components()} component(s)"
        )
        return plan

    def plan_stop(self, components: Sequence[Component]) -> List[Component]:
        """Components in stop order (reverse dependency order)."""
        components = list(components)
        if not components:
            return []
        by_name = {component.name: component for component in components}
        order = DependencyGraph.from_components(components).get_stop_order()
        return [by_name[name] for name in order]

    def _sequential_plan(self, components: List[Component]) -> ExecutionPlan:
        last = len(components) - 1
        steps = [
            Step(
                number=index + 1,
                components=(component,),
                delay_after=component.startup_delay if index < last else 0.0,
            )
            for index, component in enumerate(components)
        ]
        return ExecutionPlan(mode=ExecutionMode.SEQUENTIAL, steps=steps)

    def _parallel_plan(self, components: List[Component]) -> ExecutionPlan:
        dependent = [c.name for c in components if c.depends_on]
        if dependent:
            self.logger.warning(
                "Parallel mode ignores declared dependencies; start order is not "
                f"guaranteed for: {', '.join(dependent)}"
            )
        step = Step(number=1, components=tuple(components), concurrent=True)
        return ExecutionPlan(
            mode=ExecutionMode.PARALLEL,
            steps=[step],
            respects_dependencies=not dependent
        )

    def _wave_plan(self, components: List[Component]) -> ExecutionPlan:
        by_name = {component.name: component for component in components}
        waves = DependencyGraph.from_components(components).get_deployment_waves()
        steps = [
            Step(
                number=number,
                components=tuple(by_name[name] for name in wave),
                concurrent=True,
            )
            for number, wave in enumerate(waves, start=1)
        ]
        return ExecutionPlan(mode=ExecutionMode.PARALLEL, steps=steps)

    def _check_plan(self, plan: ExecutionPlan, components: List[Component]) -> None:
        if not plan.steps or any(step.size() == 0 for step in plan.steps):
            raise ConfigurationError("Execution plan contains an empty step")

        counts = Counter(component.name for component in plan.components())
        expected = {component.name for component in components}

        duplicated = sorted(name for name, count in counts.items() if count > 1)
        if duplicated:
            raise ConfigurationError(
                f"Execution plan schedules components more than once: {', '.join(duplicated)}"
            )

        missing = sorted(expected - set(counts))
        if missing:
            raise ConfigurationError(
                f"Execution plan is missing components: {', '.join(missing)}"
            )

        if plan.mode == ExecutionMode.SEQUENTIAL and any(step.size() != 1 for step in plan.steps):
            raise ConfigurationError("Sequential steps must hold exactly one component")
