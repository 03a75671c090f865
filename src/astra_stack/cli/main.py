"""Main CLI entry point."""

import sys
from typing import Optional

import click
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from astra_stack import __version__
from astra_stack.cli.output import (
    RichProgressCallback,
    console,
    print_busy_ports,
    print_configuration,
    print_result,
    print_status,
    print_stop_report,
)
from astra_stack.config.models import DeploymentMode
from astra_stack.config.parser import StackConfig
from astra_stack.drivers.script import ScriptDriver
from astra_stack.health.prober import HealthProber
from astra_stack.logs.follower import LogFollower
from astra_stack.orchestrator.orchestrator import StackOrchestrator
from astra_stack.orchestrator.planner import ExecutionPlan, ExecutionPlanner
from astra_stack.preflight.checks import PreflightChecker
from astra_stack.utils.errors import ConfigurationError, PreflightError
from astra_stack.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


class StackGroup(click.Group):
    """Command group that treats an unknown command as a plain error (exit 1)."""

    def resolve_command(self, ctx, args):
        cmd_name = args[0] if args else None
        if cmd_name and not cmd_name.startswith('-') and self.get_command(ctx, cmd_name) is None:
            console.print(f"[red]Error:[/red] Unknown command: {escape(cmd_name)}")
            console.print("Run [cyan]astra-stack help[/cyan] for usage.")
            ctx.exit(1)
        return super().resolve_command(ctx, args)


@click.group(
    cls=StackGroup,
    invoke_without_command=True,
    context_settings={'help_option_names': ['-h', '--help']}
)
@click.option('--mode', '-m', 'deployment_mode', type=click.Choice([m.value for m in DeploymentMode]),
              help='Deployment backend [env: DEPLOYMENT_MODE]')
@click.option('--parallel', is_flag=True, help='Deploy all components concurrently [env: PARALLEL_DEPLOYMENT]')
@click.option('--respect-dependencies', is_flag=True,
              help='In parallel mode, deploy in dependency waves [env: PARALLEL_RESPECT_DEPENDENCIES]')
@click.option('--skip-health-checks', is_flag=True, help='Do not probe components [env: SKIP_HEALTH_CHECKS]')
@click.option('--dry-run', is_flag=True, help='Log what would happen without running scripts [env: DRY_RUN]')
@click.option('--skip-preflight', is_flag=True, help='Skip tool and port checks [env: SKIP_PREFLIGHT]')
@click.option('--health-check-timeout', type=int, help='Seconds to wait for each component [env: HEALTH_CHECK_TIMEOUT]')
@click.option('--health-check-interval', type=float, help='Seconds between probes [env: HEALTH_CHECK_INTERVAL]')
@click.option('--restart-cooldown', type=float, help='Seconds between stop and deploy on restart [env: RESTART_COOLDOWN]')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='YAML component registry [env: ASTRA_STACK_CONFIG]')
@click.option('--scripts-dir', type=click.Path(file_okay=False), help='Component scripts [env: ASTRA_SCRIPTS_DIR]')
@click.option('--log-dir', type=click.Path(file_okay=False), help='Log directory [env: ASTRA_LOG_DIR]')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.version_option(__version__, prog_name='astra-stack')
@click.pass_context
def cli(ctx, deployment_mode, parallel, respect_dependencies, skip_health_checks, dry_run, skip_preflight,
        health_check_timeout, health_check_interval, restart_cooldown, config_path, scripts_dir, log_dir,
        log_level):
    """Astra stack deployment orchestrator.

    Brings up astra-xmod-shim, astron-agent and astron-rpa in dependency
    order and verifies each one is healthy. Runs `deploy` when no command
    is given.
    """
    ctx.ensure_object(dict)
    # Unset flags fall back to the environment
    ctx.obj['overrides'] = {
        'deployment_mode': deployment_mode,
        'parallel_deployment': True if parallel else None,
        'parallel_respect_dependencies': True if respect_dependencies else None,
        'skip_health_checks': True if skip_health_checks else None,
        'dry_run': True if dry_run else None,
        'skip_preflight': True if skip_preflight else None,
        'health_check_timeout': health_check_timeout,
        'health_check_interval': health_check_interval,
        'restart_cooldown': restart_cooldown,
        'config_path': config_path,
        'scripts_dir': scripts_dir,
        'log_dir': log_dir,
    }
    ctx.obj['log_level'] = log_level

    if ctx.invoked_subcommand is None:
        ctx.invoke(deploy)


def load_config(ctx) -> StackConfig:
    """Load settings and registry, exiting with status 1 when invalid."""
    try:
        config = StackConfig(**ctx.obj['overrides']).load()
    except ConfigurationError as e:
        setup_logging(ctx.obj['log_level'], log_dir=None)
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(1)

    setup_logging(ctx.obj['log_level'], log_dir=str(config.settings.log_dir))
    return config


def create_orchestrator(config: StackConfig) -> StackOrchestrator:
    """Create stack orchestrator with all dependencies."""
    settings = config.settings
    prober = HealthProber(request_timeout=settings.probe_request_timeout)
    driver = ScriptDriver(
        scripts_dir=settings.scripts_dir,
        log_dir=settings.log_dir,
        prober=prober
    )
    return StackOrchestrator(config.registry, settings, driver, prober=prober)


def run_preflight(config: StackConfig, ports: bool = True) -> None:
    """Run pre-flight checks, exiting with status 1 when tooling is missing."""
    try:
        busy = PreflightChecker(config.settings, config.registry).run(ports=ports)
    except PreflightError as e:
        console.print(f"[red]Pre-flight check failed:[/red]\n{escape(e.to_user_message())}")
        sys.exit(1)
    print_busy_ports(busy)


def preview_plan(config: StackConfig) -> ExecutionPlan:
    """Plan the run up front so the configuration panel can describe it."""
    settings = config.settings
    return ExecutionPlanner().plan(
        config.registry.list(),
        settings.execution_mode,
        respect_dependencies=settings.parallel_respect_dependencies
    )


def run_with_progress(orchestrator: StackOrchestrator, restart: bool = False):
    """Run deploy or restart with a progress display."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console
    ) as progress:
        task_id = progress.add_task("[cyan]Starting deployment...", total=None)
        progress_callback = RichProgressCallback(progress, task_id)

        if restart:
            return orchestrator.restart(progress_callback=progress_callback)
        return orchestrator.deploy(progress_callback=progress_callback)


@cli.command()
@click.pass_context
def deploy(ctx):
    """Deploy the whole stack (default command)."""
    config = load_config(ctx)
    print_configuration(config.settings, config.registry, plan=preview_plan(config))
    run_preflight(config)

    result = run_with_progress(create_orchestrator(config))
    print_result(result, config.registry)
    sys.exit(result.exit_code)


@cli.command()
@click.pass_context
def status(ctx):
    """Probe every component's health endpoint now."""
    config = load_config(ctx)
    statuses = create_orchestrator(config).status()
    print_status(statuses, config.registry)


@cli.command()
@click.pass_context
def stop(ctx):
    """Stop every component in reverse dependency order."""
    config = load_config(ctx)
    console.print("[bold]Stopping stack...[/bold]")
    report = create_orchestrator(config).stop()
    print_stop_report(report)


@cli.command()
@click.option('--lines', '-n', default=50, type=click.IntRange(min=0), help='Lines to show per component')
@click.option('--follow/--no-follow', default=True, help='Keep printing new lines')
@click.pass_context
def logs(ctx, lines, follow):
    """Show component logs."""
    config = load_config(ctx)
    log_dir = config.settings.log_dir
    follower = LogFollower(
        {component.name: log_dir / f"{component.name}.log" for component in config.registry},
        console=console
    )

    follower.print_tail(lines)
    if not follow:
        return

    console.print("\n[dim]Following logs, press Ctrl+C to stop[/dim]")
    try:
        follower.follow()
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped following logs[/dim]")


@cli.command()
@click.pass_context
def restart(ctx):
    """Stop the stack, wait the cool-down, then deploy it again."""
    config = load_config(ctx)
    print_configuration(config.settings, config.registry, title="Stack Restart", plan=preview_plan(config))
    run_preflight(config, ports=False)

    result = run_with_progress(create_orchestrator(config), restart=True)
    print_result(result, config.registry)
    sys.exit(result.exit_code)


@cli.command(name='help')
@click.pass_context
def help_command(ctx):
    """Show this message and exit."""
    click.echo(ctx.parent.get_help())


def main(argv: Optional[list] = None):
    """Console script entry point."""
    cli(args=argv, prog_name='astra-stack', obj={})


if __name__ == '__main__':
    main()
