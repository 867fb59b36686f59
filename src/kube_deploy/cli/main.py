"""Main CLI entry point."""

import sys
import tempfile
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kube_deploy.config.models import DeploymentSpec
from kube_deploy.config.parser import Config, ConfigValidationError
from kube_deploy.executor.cancellation import CancellationToken, install_signal_handlers
from kube_deploy.executor.command import CommandExecutor
from kube_deploy.orchestrator.orchestrator import (
    DeploymentOrchestrator,
    ExecutionStatus,
    RunOutcome,
    RunPhase,
    RunStatus,
)
from kube_deploy.utils.errors import DeploymentError
from kube_deploy.utils.logging import setup_logging, get_logger

console = Console()
logger = get_logger(__name__)


@click.group()
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.option('--log-format', default='console', envvar='KUBE_DEPLOY_LOG_FORMAT',
              type=click.Choice(['console', 'json']), help='Format of log lines on stdout')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write JSON logs to this file')
@click.pass_context
def cli(ctx, log_level, log_format, log_file):
    """Render, validate, apply and await Kubernetes manifests."""
    ctx.ensure_object(dict)
    ctx.obj['log_level'] = log_level

    # Setup logging
    setup_logging(log_level, log_format=log_format, log_file=log_file)


def load_spec(
    params_yaml: Optional[str],
    config_path: Optional[str],
    namespace: Optional[str] = None,
    release_action: Optional[str] = None,
    dry_run: bool = False
) -> DeploymentSpec:
    """Load and validate run parameters, exiting on failure."""
    try:
        if config_path:
            config = Config.from_file(config_path)
        elif params_yaml is not None:
            config = Config.from_string(params_yaml, source="--params-yaml")
        else:
            console.print("[red]Error:[/red] Provide parameters with --params-yaml or --config")
            sys.exit(2)
        return config.load(namespace=namespace, release_action=release_action, dry_run=dry_run)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)
    except DeploymentError as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        sys.exit(1)


class ConsoleProgress:
    """Progress callback that prints phase transitions using Rich."""

    STYLES = {
        ExecutionStatus.IN_PROGRESS: ("cyan", "->"),
        ExecutionStatus.SUCCESS: ("green", "ok"),
        ExecutionStatus.FAILED: ("red", "failed"),
        ExecutionStatus.SKIPPED: ("dim", "skipped"),
    }

    def __call__(self, phase: RunPhase, status: ExecutionStatus, message: Optional[str]):
        style, label = self.STYLES[status]
        line = f"[{style}]{label:>7}[/{style}] [bold]{phase.value}[/bold]"
        if message:
            line += f" [dim]{message}[/dim]"
        console.print(line)


def _print_spec(spec: DeploymentSpec) -> None:
    workloads = spec.workloads
    console.print(Panel.fit(
        f"[bold]Deploying to namespace {spec.namespace}[/bold]\n"
        f"Manifests: {', '.join(spec.manifests)}\n"
        f"Deployments: {', '.join(workloads.deployments) or '-'}\n"
        f"Statefulsets: {', '.join(workloads.statefulsets) or '-'}\n"
        f"Daemonsets: {', '.join(workloads.daemonsets) or '-'}\n"
        f"Jobs: {', '.join(workloads.jobs) or '-'}\n"
        f"Await zero replicas: {'yes' if spec.await_zero_replicas else 'no'}\n"
        f"Dry run: {'yes' if spec.dry_run else 'no'}\n"
        f"Job timeout: {spec.job_timeout_seconds or 'disabled'}",
        title="Deployment Configuration",
        border_style="cyan"
    ))


def _print_outcome(outcome: RunOutcome) -> None:
    console.print()
    if outcome.status == RunStatus.APPLIED:
        console.print(Panel.fit(
            f"[green]Deployment successful[/green]\n\n"
            f"Applied manifests: {len(outcome.applied_manifests)}\n"
            f"Awaited resources: {len(outcome.wait_results)}\n"
            f"Duration: {outcome.duration:.2f}s",
            title="Deployment Complete",
            border_style="green"
        ))
        return

    if outcome.status == RunStatus.DRY_RUN_COMPLETED:
        changed = outcome.validation.changed_manifests() if outcome.validation else []
        console.print(Panel.fit(
            f"[green]Dry run successful[/green]\n\n"
            f"Changed manifests: {', '.join(changed) or 'none'}\n"
            f"Duration: {outcome.duration:.2f}s",
            title="Dry Run Complete",
            border_style="green"
        ))
        return

    console.print(Panel.fit(
        f"[red]Deployment {outcome.status.value.replace('_', ' ')}[/red]\n\n"
        f"Phase: {outcome.phase.value}\n"
        f"Applied manifests: {', '.join(outcome.applied_manifests) or 'none'}\n"
        f"Duration: {outcome.duration:.2f}s",
        title="Deployment Failed",
        border_style="red"
    ))
    if outcome.error is not None:
        console.print(outcome.error.to_user_message(), markup=False, highlight=False)

    if outcome.timed_out_jobs:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Job", style="cyan")
        table.add_column("Logs")
        for job, logs in outcome.timed_out_jobs.items():
            table.add_row(job, logs or "(no logs)")
        console.print(table)


@cli.command()
@click.option('--params-yaml', envvar='KUBE_DEPLOY_PARAMS_YAML', help='Run parameters as YAML')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Path to a YAML or JSON parameter file')
@click.option('--namespace', help='Namespace used when the parameters do not set one')
@click.option('--release-action', envvar='KUBE_DEPLOY_RELEASE_ACTION',
              help="Release action; 'diff' only validates and diffs")
@click.option('--dry-run', is_flag=True, help='Validate and diff without applying')
@click.option('--kubectl', 'kubectl_binary', default='kubectl', show_default=True,
              help='kubectl executable')
@click.option('--working-dir', type=click.Path(file_okay=False, exists=True),
              help='Directory manifest paths are relative to')
def deploy(params_yaml, config_path, namespace, release_action, dry_run, kubectl_binary, working_dir):
    """Validate, apply and await manifests in a namespace."""
    spec = load_spec(params_yaml, config_path, namespace, release_action, dry_run)
    _print_spec(spec)

    token = CancellationToken()
    install_signal_handlers(token)

    orchestrator = DeploymentOrchestrator(
        spec,
        executor=CommandExecutor(binary=kubectl_binary, cwd=working_dir),
        working_dir=working_dir,
        progress_callback=ConsoleProgress()
    )
    outcome = orchestrator.run(token)

    _print_outcome(outcome)
    sys.exit(outcome.exit_code)


@cli.command()
@click.option('--params-yaml', envvar='KUBE_DEPLOY_PARAMS_YAML', help='Run parameters as YAML')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Path to a YAML or JSON parameter file')
@click.option('--namespace', help='Namespace used when the parameters do not set one')
@click.option('--working-dir', type=click.Path(file_okay=False, exists=True),
              help='Directory manifest paths are relative to')
def render(params_yaml, config_path, namespace, working_dir):
    """Print the rendered manifests without contacting the cluster."""
    spec = load_spec(params_yaml, config_path, namespace)
    orchestrator = DeploymentOrchestrator(spec, working_dir=working_dir)

    try:
        with tempfile.TemporaryDirectory(prefix="rendered-") as scratch_dir:
            for manifest in orchestrator.render_manifests(Path(scratch_dir)):
                console.print(f"[bold cyan]# {manifest.source_path}[/bold cyan]")
                console.print(Syntax(manifest.content, "yaml", background_color="default"))
    except DeploymentError as e:
        console.print(f"[red]Render error:[/red] {e}")
        sys.exit(1)


if __name__ == '__main__':
    cli()
