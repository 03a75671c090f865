"""Main orchestrator that coordinates planning, execution and reporting."""

import threading
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from astra_stack.config.models import Component, StackSettings
from astra_stack.config.registry import ComponentRegistry
from astra_stack.drivers.base import BaseDriver
from astra_stack.drivers.dry_run import DryRunDriver
from astra_stack.health.prober import HealthProber, HealthStatus
from astra_stack.orchestrator.executor import ProgressCallback, StackExecutor
from astra_stack.orchestrator.outcomes import (
    DeploymentOutcome,
    OutcomeTable,
    RunState,
    StackResult,
    StopReport,
)
from astra_stack.orchestrator.planner import ExecutionPlanner
from astra_stack.utils.errors import ConfigurationError, ErrorContext, StopFailedError, error_handler
from astra_stack.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class StackOrchestrator:
    """Coordinates bring-up, status, stop and restart of the stack.

    The orchestrator keeps no state between runs: every ``deploy`` starts
    from a fresh outcome table and ``status`` re-probes live endpoints.
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        settings: StackSettings,
        driver: BaseDriver,
        prober: Optional[HealthProber] = None,
        planner: Optional[ExecutionPlanner] = None
    ):
        """Initialize stack orchestrator.

        Args:
            registry: Components in dependency order
            settings: Run settings
            driver: Driver for deploy/stop calls; replaced by a dry-run
                driver when ``settings.dry_run`` is set
            prober: Health prober
            planner: Execution planner
        """
        self.registry = registry
        self.settings = settings
        self.prober = prober or HealthProber(request_timeout=settings.probe_request_timeout)
        self.driver = DryRunDriver(self.prober) if settings.dry_run else driver
        self.planner = planner or ExecutionPlanner()
        self.cancel_event = threading.Event()
        self.state = RunState.IDLE
        self.table: Optional[OutcomeTable] = None
        self.logger = get_logger(__name__)

    def abort(self) -> None:
        """Stop in-flight probes and prevent further deploy calls.

        Deploy calls already issued run to their own completion.
        """
        if not self.cancel_event.is_set():
            self.logger.warning("Abort requested; no further components will be started")
        self.cancel_event.set()

    def deploy(self, progress_callback: Optional[ProgressCallback] = None) -> StackResult:
        """Bring the stack up once.

        Args:
            progress_callback: Optional progress receiver

        Returns:
            StackResult for this run
        """
        progress = progress_callback or ProgressCallback()
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        names = self.registry.names()

        self.cancel_event.clear()
        self.table = OutcomeTable(names, listener=progress.on_transition)
        self.state = RunState.IDLE

        self.logger.info(
            f"Starting stack deployment (mode: {self.settings.deployment_mode.value}, "
            f"parallel: {str(self.settings.parallel_deployment).lower()}, "
            f"dry run: {str(self.settings.dry_run).lower()})"
        )

        self.state = RunState.PLANNING
        try:
            plan = self.planner.plan(
                self.registry.list(),
                self.settings.execution_mode,
                respect_dependencies=self.settings.parallel_respect_dependencies
            )
        except ConfigurationError as e:
            error_handler.log_error(e)
            self.state = RunState.DONE
            result = StackResult.planning_failed(
                e,
                names,
                mode=self.settings.execution_mode,
                start_time=start_time,
                end_time=datetime.now(timezone.utc),
                duration=time.monotonic() - started
            )
            progress.on_complete(result)
            return result

        progress.on_start(plan.get_total_components())

        self.state = RunState.EXECUTING
        executor = StackExecutor(
            self.driver,
            self.prober,
            self.settings,
            self.cancel_event,
            phase_listener=self._enter_phase
        )
        try:
            executor.execute(plan, self.table)
        except KeyboardInterrupt:
            self.abort()
            self._finalize_interrupted()

        self.state = RunState.AGGREGATING
        result = StackResult.aggregate(
            self.table,
            mode=plan.mode,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            duration=time.monotonic() - started,
            aborted=self.cancel_event.is_set()
        )
        self.state = RunState.DONE

        self._log_result(result)
        progress.on_complete(result)
        return result

    def status(self) -> Dict[str, HealthStatus]:
        """Re-probe every component's health endpoint now.

        Returns:
            Health per component in registry order; UNKNOWN when a
            component cannot be asked
        """
        statuses = {}
        for component in self.registry:
            with LogContext(component=component.name, operation='status'):
                try:
                    statuses[component.name] = self.driver.status(component)
                except Exception as e:
                    self.logger.warning(f"Status check failed: {e}")
                    statuses[component.name] = HealthStatus.UNKNOWN
                self.logger.debug(f"Status: {statuses[component.name].value}")
        return statuses

    def stop(self) -> StopReport:
        """Stop every component in reverse dependency order, best effort.

        Returns:
            StopReport; failures are recorded, never raised
        """
        started = time.monotonic()
        order = self.planner.plan_stop(self.registry.list())
        report = StopReport(order=[component.name for component in order])

        self.logger.info("Stopping stack...")
        for component in order:
            backend = component.resolve_backend(self.settings.deployment_mode)
            with LogContext(component=component.name, backend=backend, operation='stop'):
                self._stop_component(component, backend, report)

        report.duration = time.monotonic() - started
        self.logger.info("Stack stopped")
        return report

    def _stop_component(self, component: Component, backend: str, report: StopReport) -> None:
        self.logger.info("Stopping...")
        try:
            result = self.driver.stop(component, backend)
            reason = result.reason or "stop failed"
            success = result.success
        except Exception as e:
            reason = error_handler.handle_exception(
                e, ErrorContext(component=component.name, backend=backend, operation='stop')
            ).message
            success = False

        if success:
            report.stopped.append(component.name)
            return

        report.failed[component.name] = reason
        error_handler.log_error(StopFailedError(
            f"Failed to stop {component.name}: {reason.splitlines()[-1] if reason else ''}",
            context=ErrorContext(component=component.name, backend=backend, operation='stop')
        ))

    def restart(self, progress_callback: Optional[ProgressCallback] = None) -> StackResult:
        """Stop, wait the cool-down, then run a fresh deploy.

        Args:
            progress_callback: Optional progress receiver for the deploy

        Returns:
            StackResult of the fresh deploy
        """
        self.cancel_event.clear()
        self.stop()

        cooldown = self.settings.restart_cooldown
        if cooldown > 0:
            self.logger.info(f"Waiting {cooldown:g}s before redeploying...")
            try:
                interrupted = self.cancel_event.wait(cooldown)
            except KeyboardInterrupt:
                self.abort()
                interrupted = True

            if interrupted:
                self.logger.warning("Restart aborted during cool-down; nothing was redeployed")
                self.table = OutcomeTable(self.registry.names())
                self.state = RunState.DONE
                return StackResult.aggregate(
                    self.table,
                    mode=self.settings.execution_mode,
                    aborted=True
                )

        return self.deploy(progress_callback=progress_callback)

    def _enter_phase(self, phase: RunState) -> None:
        self.state = phase

    def _finalize_interrupted(self) -> None:
        """Move components caught mid-flight to a terminal outcome."""
        for name, outcome in self.table.snapshot().items():
            if outcome == DeploymentOutcome.DEPLOYING:
                self.table.transition(name, DeploymentOutcome.DEPLOY_FAILED, "aborted")
            elif outcome == DeploymentOutcome.DEPLOYED:
                self.table.transition(name, DeploymentOutcome.HEALTH_CHECK_PENDING)
                self.table.transition(name, DeploymentOutcome.UNHEALTHY, "aborted")
            elif outcome == DeploymentOutcome.HEALTH_CHECK_PENDING:
                self.table.transition(name, DeploymentOutcome.UNHEALTHY, "aborted")
            elif outcome == DeploymentOutcome.NOT_STARTED and not self.table.reason(name):
                self.table.set_reason(name, "not attempted: run aborted")

    def _log_result(self, result: StackResult) -> None:
        if result.is_success():
            self.logger.info(f"Stack deployment completed successfully in {result.duration:.1f}s")
            return

        for name in result.failed:
            outcome = result.outcomes[name]
            reason = result.reasons.get(name, "")
            with LogContext(component=name):
                self.logger.error(f"{outcome.value}" + (f": {reason.splitlines()[-1]}" if reason else ""))
        self.logger.error(
            f"Stack deployment finished with {result.kind.value}: "
            f"{len(result.failed)}/{len(result.outcomes)} component(s) not healthy"
        )
