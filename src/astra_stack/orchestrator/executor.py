"""Step executor with sequential and concurrent bring-up."""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from astra_stack.config.models import Component, ExecutionMode, StackSettings
from astra_stack.drivers.base import BaseDriver, DriverResult
from astra_stack.health.prober import HealthProber, ProbeStatus
from astra_stack.orchestrator.outcomes import DeploymentOutcome, OutcomeTable, RunState, StackResult, Transition
from astra_stack.orchestrator.planner import ExecutionPlan, Step
from astra_stack.utils.errors import (
    DeployFailedError,
    ErrorContext,
    ProbeTimedOutError,
    error_handler,
)
from astra_stack.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class ProgressCallback:
    """Receives progress notifications during a run. Methods are no-ops."""

    def on_start(self, total_components: int) -> None:
        """Called when execution starts."""

    def on_transition(self, transition: Transition) -> None:
        """Called after every outcome transition."""

    def on_complete(self, result: StackResult) -> None:
        """Called once the stack result is known."""


class StackExecutor:
    """Drives an execution plan against a driver and a prober.

    Sequential plans run in the calling thread and stop at the first
    component that fails to deploy or become healthy. Concurrent steps run
    one task per component; a failure never cancels its siblings.
    """

    def __init__(
        self,
        driver: BaseDriver,
        prober: HealthProber,
        settings: StackSettings,
        cancel_event: threading.Event,
        phase_listener: Optional[Callable[[RunState], None]] = None
    ):
        """Initialize executor.

        Args:
            driver: Driver used for deploy calls
            prober: Prober used after a successful deploy
            settings: Run settings
            cancel_event: Shared abort signal
            phase_listener: Told whenever a deploy or probe begins
        """
        self.driver = driver
        self.prober = prober
        self.settings = settings
        self.cancel_event = cancel_event
        self.phase_listener = phase_listener or (lambda phase: None)
        self.logger = get_logger(__name__)

    def execute(self, plan: ExecutionPlan, table: OutcomeTable) -> None:
        """Execute a plan, recording every outcome in ``table``.

        Args:
            plan: Plan to execute
            table: Outcome table owned by the orchestrator
        """
        self.logger.info(
            f"Starting stack execution (mode: {plan.mode.value}, "
            f"backend: {self.settings.deployment_mode.value})"
        )

        if plan.mode == ExecutionMode.SEQUENTIAL:
            self._execute_sequential(plan.steps, table)
        else:
            self._execute_concurrent(plan.steps, table)

    def _execute_sequential(self, steps: List[Step], table: OutcomeTable) -> None:
        for index, step in enumerate(steps):
            component = step.components[0]
            remaining = steps[index + 1:]

            if self.cancel_event.is_set():
                self._mark_not_attempted(steps[index:], table, "run aborted")
                return

            if not self._deploy(component, table):
                self._mark_not_attempted(remaining, table, f"{component.name} failed to deploy")
                return

            # Startup delays do not apply to dry runs
            if step.delay_after > 0 and not self.settings.dry_run:
                self.logger.info(f"Waiting {step.delay_after:g}s before deploying next component...")
                self.cancel_event.wait(step.delay_after)

            if not self._probe(component, table):
                self._mark_not_attempted(remaining, table, f"{component.name} is not healthy")
                return

    def _execute_concurrent(self, steps: List[Step], table: OutcomeTable) -> None:
        for step in steps:
            ready = []
            for component in step.components:
                blocked = sorted(
                    dep for dep in component.depends_on
                    if dep in table.names() and table.get(dep) != DeploymentOutcome.HEALTHY
                )
                # Single-step parallel plans launch everything regardless of dependencies
                if blocked and len(steps) > 1:
                    table.set_reason(component.name, f"dependency not healthy: {', '.join(blocked)}")
                    with LogContext(component=component.name):
                        self.logger.warning(f"Not starting: dependency not healthy ({', '.join(blocked)})")
                else:
                    ready.append(component)

            if ready:
                self._run_step_tasks(step, ready, table)

    def _run_step_tasks(self, step: Step, components: List[Component], table: OutcomeTable) -> None:
        self.logger.info(f"Launching step {step.number} ({len(components)} component(s) concurrently)")
        workers = min(self.settings.max_workers, len(components))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="astra-stack") as pool:
            future_to_name = {
                pool.submit(self._bring_up, component, table): component.name
                for component in components
            }
            try:
                for future in as_completed(future_to_name):
                    name = future_to_name[future]
                    try:
                        future.result()
                    except Exception as e:
                        self.logger.error(f"Unexpected error bringing up {name}: {e}", extra={'component': name})
                        table.set_reason(name, f"unexpected error: {e}")
            except KeyboardInterrupt:
                # Stop probes and unstarted tasks; issued deploys finish on their own
                self.cancel_event.set()
                raise

    def _bring_up(self, component: Component, table: OutcomeTable) -> None:
        with LogContext(component=component.name):
            if self.cancel_event.is_set():
                table.set_reason(component.name, "not attempted: run aborted")
                return
            if self._deploy(component, table):
                self._probe(component, table)

    def _deploy(self, component: Component, table: OutcomeTable) -> bool:
        backend = component.resolve_backend(self.settings.deployment_mode)
        with LogContext(component=component.name, backend=backend, operation='deploy'):
            return self._run_deploy(component, backend, table)

    def _run_deploy(self, component: Component, backend: str, table: OutcomeTable) -> bool:
        name = component.name

        self.phase_listener(RunState.EXECUTING)
        table.transition(name, DeploymentOutcome.DEPLOYING, f"backend: {backend}")
        self.logger.info("Starting deployment...")

        try:
            result = self.driver.deploy(component, backend)
        except Exception as e:
            error = error_handler.handle_exception(
                e, ErrorContext(component=name, backend=backend, operation='deploy')
            )
            result = DriverResult.failed(name, error.message)

        if result.success:
            table.transition(name, DeploymentOutcome.DEPLOYED)
            self.logger.info("Deployment completed successfully")
            return True

        reason = result.reason or "deploy failed"
        table.transition(name, DeploymentOutcome.DEPLOY_FAILED, reason)
        error_handler.log_error(DeployFailedError(
            f"Failed to deploy {name}: {reason.splitlines()[-1]}",
            context=ErrorContext(
                component=name,
                backend=backend,
                operation='deploy',
                exit_code=result.exit_code,
                additional_info={'output': reason}
            ),
            suggestions=[f"Check {self.settings.log_dir / (name + '.log')} for the full output"]
        ))
        return False

    def _probe(self, component: Component, table: OutcomeTable) -> bool:
        with LogContext(component=component.name, operation='probe'):
            return self._run_probe(component, table)

    def _run_probe(self, component: Component, table: OutcomeTable) -> bool:
        name = component.name

        if not self.settings.probing_enabled:
            reason = "dry run" if self.settings.dry_run else "health check skipped"
            table.transition(name, DeploymentOutcome.HEALTHY, reason)
            self.logger.info(f"Health check skipped ({reason})")
            return True

        self.phase_listener(RunState.PROBING)
        table.transition(name, DeploymentOutcome.HEALTH_CHECK_PENDING)
        try:
            result = self.prober.probe(
                component.health_url,
                timeout=self.settings.health_check_timeout,
                poll_interval=self.settings.health_check_interval,
                cancel_event=self.cancel_event,
                component=name
            )
        except Exception as e:
            error = error_handler.handle_exception(
                e, ErrorContext(component=name, operation='probe', url=component.health_url)
            )
            error_handler.log_error(error)
            table.transition(name, DeploymentOutcome.UNHEALTHY, f"health check error: {error.message}")
            return False

        if result.is_healthy():
            table.transition(name, DeploymentOutcome.HEALTHY)
            return True

        if result.status == ProbeStatus.CANCELLED:
            table.transition(name, DeploymentOutcome.UNHEALTHY, "health check cancelled")
            return False

        reason = f"health check timed out after {self.settings.health_check_timeout}s"
        if result.last_error:
            reason = f"{reason} ({result.last_error})"
        table.transition(name, DeploymentOutcome.UNHEALTHY, reason)
        error_handler.log_error(ProbeTimedOutError(
            f"{name} did not become healthy",
            context=ErrorContext(component=name, operation='probe', url=component.health_url),
            suggestions=[
                f"Check that {name} listens on port {component.port}",
                "Raise HEALTH_CHECK_TIMEOUT if the service starts slowly"
            ]
        ))
        return False

    def _mark_not_attempted(self, steps: List[Step], table: OutcomeTable, why: str) -> None:
        for step in steps:
            for component in step.components:
                table.set_reason(component.name, f"not attempted: {why}")
                self.logger.info(f"Not started ({why})", extra={'component': component.name})
