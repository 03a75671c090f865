"""Rich rendering of settings, results and status."""

from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress
from rich.table import Table

from astra_stack.config.models import Component, StackSettings
from astra_stack.config.registry import ComponentRegistry
from astra_stack.health.prober import HealthStatus
from astra_stack.orchestrator.executor import ProgressCallback
from astra_stack.orchestrator.outcomes import (
    DeploymentOutcome,
    StackResult,
    StackResultKind,
    StopReport,
    Transition,
)
from astra_stack.orchestrator.planner import ExecutionPlan

console = Console()

OUTCOME_STYLES = {
    DeploymentOutcome.HEALTHY: "green",
    DeploymentOutcome.UNHEALTHY: "red",
    DeploymentOutcome.DEPLOY_FAILED: "red",
    DeploymentOutcome.NOT_STARTED: "dim",
}

HEALTH_STYLES = {
    HealthStatus.HEALTHY: "[green]✓ healthy[/green]",
    HealthStatus.UNHEALTHY: "[red]✗ unhealthy[/red]",
    HealthStatus.UNKNOWN: "[yellow]? unknown[/yellow]",
}


class RichProgressCallback(ProgressCallback):
    """Progress callback that displays updates using Rich."""

    def __init__(self, progress: Progress, task_id):
        self.progress = progress
        self.task_id = task_id
        self.total = 0
        self.completed = 0

    def on_start(self, total_components: int):
        """Called when execution starts."""
        self.total = total_components
        self.progress.update(self.task_id, total=total_components)

    def on_transition(self, transition: Transition):
        """Called after every outcome transition; may run on worker threads."""
        name = transition.component
        if transition.current == DeploymentOutcome.DEPLOYING:
            self.progress.update(self.task_id, description=f"[cyan]Deploying:[/cyan] {name}")
        elif transition.current == DeploymentOutcome.HEALTH_CHECK_PENDING:
            self.progress.update(self.task_id, description=f"[cyan]Waiting for health:[/cyan] {name}")
        elif transition.current.is_terminal():
            self.completed += 1
            status = "[green]✓[/green]" if transition.current == DeploymentOutcome.HEALTHY else "[red]✗[/red]"
            self.progress.update(
                self.task_id,
                completed=self.completed,
                description=f"{status} {name}"
            )

    def on_complete(self, result: StackResult):
        """Called when execution completes."""
        status = "[green]Complete[/green]" if result.is_success() else "[red]Failed[/red]"
        self.progress.update(self.task_id, description=status)


def print_configuration(
    settings: StackSettings,
    registry: ComponentRegistry,
    title: str = "Stack Deployment",
    plan: Optional[ExecutionPlan] = None
):
    """Show what is about to run, and the plan's shape when one is given."""
    lines = [
        f"[bold]{title}[/bold]",
        f"Deployment mode: {settings.deployment_mode.value}",
        f"Execution: {settings.execution_mode.value}",
        f"Health checks: {'enabled' if settings.probing_enabled else 'disabled'}",
        f"Dry run: {'yes' if settings.dry_run else 'no'}",
        f"Components: {', '.join(registry.names())}",
    ]
    if plan is not None:
        lines.append(f"Steps: {len(plan.steps)}")
        # Dry runs skip the waits between steps
        if plan.estimated_delay() and not settings.dry_run:
            lines.append(f"Startup delays: {plan.estimated_delay():g}s")

    console.print(Panel.fit(
        "\n".join(lines),
        title="Configuration",
        border_style="cyan"
    ))


def print_busy_ports(components: List[Component]):
    """Warn about ports that are already taken."""
    for component in components:
        console.print(
            f"[yellow]⚠ Port {component.port} is already in use[/yellow] "
            f"({component.name} may already be running)"
        )


def print_result(result: StackResult, registry: ComponentRegistry):
    """Show the stack result and every component's outcome."""
    console.print()
    healthy = len(result.components_with(DeploymentOutcome.HEALTHY))
    summary = (
        f"Components: {len(result.outcomes)}\n"
        f"Healthy: {healthy}\n"
        f"Not healthy: {len(result.failed)}\n"
        f"Duration: {result.duration:.2f}s"
    )
    if result.aborted:
        summary += "\n[yellow]Run was aborted[/yellow]"

    if result.kind == StackResultKind.ALL_HEALTHY:
        console.print(Panel.fit(
            f"[green]✓ Stack deployment successful[/green]\n\n{summary}",
            title="Deployment Complete",
            border_style="green"
        ))
    elif result.kind == StackResultKind.PARTIAL_FAILURE:
        console.print(Panel.fit(
            f"[yellow]⚠ Stack partially deployed[/yellow]\n\n{summary}",
            title="Deployment Partial",
            border_style="yellow"
        ))
    else:
        console.print(Panel.fit(
            f"[red]✗ Stack deployment failed[/red]\n\n{summary}",
            title="Deployment Failed",
            border_style="red"
        ))

    if result.error:
        console.print(f"\n[red]Planning failed:[/red] {escape(str(result.error))}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Component", style="cyan")
    table.add_column("Outcome")
    table.add_column("URL", style="dim")
    table.add_column("Reason")

    for name, outcome in result.outcomes.items():
        component = registry.get(name)
        style = OUTCOME_STYLES.get(outcome, "yellow")
        reason = result.reasons.get(name, "")
        table.add_row(
            name,
            f"[{style}]{outcome.value}[/{style}]",
            component.health_url if component else "",
            escape(reason.splitlines()[-1]) if reason else ""
        )

    console.print(table)


def print_status(statuses: Dict[str, HealthStatus], registry: ComponentRegistry):
    """Show the live health of every component."""
    table = Table(title="Stack Status", show_header=True, header_style="bold")
    table.add_column("Component", style="cyan")
    table.add_column("Port")
    table.add_column("URL", style="dim")
    table.add_column("Status")

    for name, status in statuses.items():
        component = registry.get(name)
        table.add_row(name, str(component.port), component.health_url, HEALTH_STYLES[status])

    console.print(table)


def print_stop_report(report: StopReport):
    """Show which components stopped."""
    for name in report.order:
        if name in report.failed:
            reason = report.failed[name].splitlines()
            console.print(f"  [red]✗[/red] {name}: {escape(reason[-1]) if reason else 'stop failed'}")
        else:
            console.print(f"  [green]✓[/green] {name} stopped")

    if report.is_success():
        console.print(f"\n[green]Stack stopped[/green] ({report.duration:.2f}s)")
    else:
        console.print(
            f"\n[yellow]Stack stopped with {len(report.failed)} failure(s)[/yellow] "
            f"({report.duration:.2f}s)"
        )
