"""Main CLI entry point."""

import json
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from cloudwait.config.parser import Config, ConfigValidationError
from cloudwait.orchestrator import ExecutionResult, ExecutionStatus, ResourceOrchestrator
from cloudwait.poller import CancellationError, CancellationToken
from cloudwait.provisioners import (
    AthenaDatabaseProvisioner,
    AthenaQueryRunner,
    BaseProvisioner,
    ChangeType,
    Route53HealthCheckProvisioner,
    build_result_configuration,
    query_poll_spec,
)
from cloudwait.provisioners.athena import ENCRYPTION_OPTIONS, result_set_values
from cloudwait.state.manager import StateManager
from cloudwait.utils.aws_client import AWSClientManager
from cloudwait.utils.errors import DeploymentError, error_handler
from cloudwait.utils.logging import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

CHANGE_STYLES = {
    ChangeType.CREATE: "[green]+ create[/green]",
    ChangeType.UPDATE: "[yellow]~ update[/yellow]",
    ChangeType.REPLACE: "[red]-/+ replace[/red]",
    ChangeType.DELETE: "[red]- delete[/red]",
    ChangeType.NO_CHANGE: "[dim]no change[/dim]",
}


@click.group()
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='AWS region (defaults to the project region)')
@click.option('--config', 'config_path', default='cloudwait.yaml', help='Path to configuration file')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.pass_context
def cli(ctx, profile, region, config_path, log_level):
    """Declarative Route53 health checks and Athena databases."""
    ctx.ensure_object(dict)
    ctx.obj['profile'] = profile
    ctx.obj['region'] = region
    ctx.obj['config_path'] = config_path
    ctx.obj.setdefault('cancel', CancellationToken())

    setup_logging(log_level)


def load_config(config_path: str) -> Config:
    """Load and validate configuration file."""
    try:
        return Config(config_path).load()
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)


def get_state_path(project_name: str) -> Path:
    """Get state file path for a project."""
    return Path.cwd() / ".cloudwait" / "state" / f"{project_name}.json"


def create_provisioners(
    client_manager: AWSClientManager,
    config: Config,
    cancel: Optional[CancellationToken] = None
) -> Dict[str, BaseProvisioner]:
    """Create one provisioner per supported resource type."""
    session = client_manager.session
    client_config = client_manager.boto_config
    return {
        AthenaDatabaseProvisioner.resource_type: AthenaDatabaseProvisioner(
            session, poll_spec=config.poll_spec(), cancel=cancel, client_config=client_config
        ),
        Route53HealthCheckProvisioner.resource_type: Route53HealthCheckProvisioner(
            session, partition=client_manager.get_partition(), client_config=client_config
        ),
    }


def create_orchestrator(ctx, config: Config, state_manager: StateManager) -> ResourceOrchestrator:
    """Create orchestrator with all dependencies."""
    client_manager = AWSClientManager(
        profile=ctx.obj.get('profile'),
        region=ctx.obj.get('region') or config.project.region
    )
    provisioners = create_provisioners(client_manager, config, ctx.obj.get('cancel'))
    return ResourceOrchestrator(config, state_manager, provisioners)


def ensure_state(state_manager: StateManager, config: Config) -> None:
    if not state_manager.exists():
        console.print(f"[yellow]Initializing new state file:[/yellow] {state_manager.state_path}")
        state_manager.initialize(project_name=config.project.name, region=config.project.region)


def report_error(error: Exception, action: str) -> None:
    """Print an error for the user and exit with status 1."""
    if not isinstance(error, DeploymentError):
        logger.exception(f"Unexpected error during {action.lower()}")
        error = error_handler.handle_exception(error)
    console.print(f"[red]{action} failed:[/red] {error.to_user_message()}")
    sys.exit(1)


def print_progress(resource_id: str, status: ExecutionStatus, detail: Optional[str]) -> None:
    if status == ExecutionStatus.IN_PROGRESS:
        console.print(f"[cyan]...[/cyan] {resource_id}: {detail}")
    elif status == ExecutionStatus.SUCCESS:
        console.print(f"[green]ok[/green]  {resource_id}: {detail}")
    elif status == ExecutionStatus.FAILED:
        console.print(f"[red]err[/red] {resource_id}: {detail}")
    else:
        console.print(f"[dim]skip[/dim] {resource_id}")


def print_summary(result: ExecutionResult, action: str) -> None:
    succeeded = sum(1 for r in result.results if r.is_success())
    if result.is_success():
        console.print(Panel.fit(
            f"[green]{action} complete[/green]\n\n"
            f"Resources: {succeeded}\n"
            f"Duration: {result.duration:.2f}s",
            border_style="green"
        ))
        return

    console.print(Panel.fit(
        f"[red]{action} failed[/red]\n\n"
        f"Succeeded: {succeeded}\n"
        f"Failed: {len(result.failed)}\n"
        f"Duration: {result.duration:.2f}s",
        border_style="red"
    ))
    for failure in result.failed:
        console.print(failure.error.to_user_message())


@cli.command()
@click.option('--resource', 'resource_id', help='Only plan this resource')
@click.pass_context
def plan(ctx, resource_id):
    """Show the changes apply would make."""
    config = load_config(ctx.obj['config_path'])
    with StateManager(str(get_state_path(config.project.name))) as state_manager:
        ensure_state(state_manager, config)
        try:
            plans = create_orchestrator(ctx, config, state_manager).plan(resource_id)
        except Exception as e:
            report_error(e, "Plan")

    table = Table(title=f"Plan for {config.project.name}")
    table.add_column("Resource", style="cyan")
    table.add_column("Type")
    table.add_column("Change")
    table.add_column("Changed properties", style="dim")
    for p in plans:
        changed = ", ".join(p.changed_properties + (["tags"] if p.tags_changed else []))
        table.add_row(p.resource.id, p.resource.type, CHANGE_STYLES[p.change_type], changed)
    console.print(table)


@cli.command()
@click.option('--resource', 'resource_id', help='Only apply this resource')
@click.pass_context
def apply(ctx, resource_id):
    """Create or update declared resources."""
    config = load_config(ctx.obj['config_path'])
    with StateManager(str(get_state_path(config.project.name))) as state_manager:
        ensure_state(state_manager, config)
        try:
            result = create_orchestrator(ctx, config, state_manager).apply(resource_id, print_progress)
        except Exception as e:
            report_error(e, "Apply")

    print_summary(result, "Apply")
    if not result.is_success():
        sys.exit(1)


@cli.command()
@click.pass_context
def refresh(ctx):
    """Re-read recorded resources from AWS into state."""
    config = load_config(ctx.obj['config_path'])
    with StateManager(str(get_state_path(config.project.name))) as state_manager:
        ensure_state(state_manager, config)
        try:
            exists = create_orchestrator(ctx, config, state_manager).refresh()
        except Exception as e:
            report_error(e, "Refresh")

    if not exists:
        console.print("[dim]No resources recorded[/dim]")
    for resource_id, present in exists.items():
        marker = "[green]present[/green]" if present else "[yellow]removed[/yellow]"
        console.print(f"{resource_id}: {marker}")


@cli.command()
@click.option('--resource', 'resource_id', help='Only destroy this resource')
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def destroy(ctx, resource_id, yes):
    """Delete resources recorded in state."""
    config = load_config(ctx.obj['config_path'])

    if not yes:
        target = resource_id or f"all resources of {config.project.name}"
        if not click.confirm(f"Destroy {target}?", default=False):
            console.print("[yellow]Destruction cancelled[/yellow]")
            return

    with StateManager(str(get_state_path(config.project.name))) as state_manager:
        ensure_state(state_manager, config)
        try:
            result = create_orchestrator(ctx, config, state_manager).destroy(resource_id, print_progress)
        except Exception as e:
            report_error(e, "Destroy")

    print_summary(result, "Destroy")
    if not result.is_success():
        console.print("\n[red]Some resources may need manual cleanup[/red]")
        sys.exit(1)


@cli.command(name='import')
@click.argument('resource_id')
@click.argument('physical_id')
@click.pass_context
def import_(ctx, resource_id, physical_id):
    """Adopt an existing resource, e.g. a health check by its ID."""
    config = load_config(ctx.obj['config_path'])
    with StateManager(str(get_state_path(config.project.name))) as state_manager:
        ensure_state(state_manager, config)
        try:
            resource = create_orchestrator(ctx, config, state_manager).import_resource(resource_id, physical_id)
        except Exception as e:
            report_error(e, "Import")

    console.print(f"[green]Imported[/green] {resource.type} {resource.physical_id} as {resource.id}")


@cli.command()
@click.argument('sql')
@click.option('--bucket', required=True, help='S3 bucket for query results')
@click.option('--database', help='Database the query runs in')
@click.option('--encryption', type=click.Choice(list(ENCRYPTION_OPTIONS)), help='Result encryption option')
@click.option('--kms-key', help='KMS key for SSE_KMS or CSE_KMS')
@click.option('--timeout', default=600.0, show_default=True, help='Seconds to wait for the query')
@click.pass_context
def query(ctx, sql, bucket, database, encryption, kms_key, timeout):
    """Run an Athena query and print its values. Ctrl-C stops the query."""
    client_manager = AWSClientManager(profile=ctx.obj.get('profile'), region=ctx.obj.get('region'))
    runner = AthenaQueryRunner(client_manager.get_client('athena'), query_poll_spec(timeout=timeout))
    encryption_configuration = {'encryption_option': encryption, 'kms_key': kms_key} if encryption else None
    cancel = ctx.obj['cancel']

    try:
        execution_id = runner.start(sql, build_result_configuration(bucket, encryption_configuration), database)
        console.print(f"[dim]Query execution {execution_id}[/dim]")
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(runner.wait, execution_id, cancel)
            try:
                future.result()
            except KeyboardInterrupt:
                cancel.cancel()
                runner.client.stop_query_execution(QueryExecutionId=execution_id)
                future.result()
        result_set = runner.results(execution_id)
    except CancellationError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        sys.exit(130)
    except Exception as e:
        report_error(e, "Query")

    values = result_set_values(result_set)
    if not values:
        console.print("[dim]No rows[/dim]")
    for value in values:
        console.print(value)


@cli.command()
@click.pass_context
def show(ctx):
    """Print the state file."""
    config = load_config(ctx.obj['config_path'])
    state_manager = StateManager(str(get_state_path(config.project.name)))
    if not state_manager.exists():
        console.print(f"[yellow]No state recorded yet for {config.project.name}[/yellow]")
        return

    try:
        state = state_manager.load()
    except DeploymentError as e:
        report_error(e, "Show")

    console.print(Syntax(json.dumps(state.to_dict(), indent=2), "json", theme="monokai"))


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
