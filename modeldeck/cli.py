"""
modeldeck CLI - Command line interface for Cube.js model deployment.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .config import Config, get_config, set_config, DEFAULT_DATA_DIR
from .deploy import DeploymentCoordinator, OperationResult
from .errors import ModelDeckError, ValidationError

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        return loop.run_until_complete(coro)


def _coordinator() -> DeploymentCoordinator:
    return DeploymentCoordinator.from_config(get_config())


def _fail(error: ModelDeckError):
    console.print(f"[red]✗ {error.message}[/red]")
    sys.exit(1)


def _print_result(result: OperationResult):
    table = Table()
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    table.add_column("Output", style="dim")

    for step in result.steps:
        mark = "[green]✓[/green]" if step.ok else "[yellow]![/yellow]"
        table.add_row(step.step, mark, step.output.strip()[:200])

    console.print(table)
    colour = "green" if result.rollout_ready is not False else "yellow"
    console.print(f"\n[bold {colour}]{result.message}[/bold {colour}]\n")


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--data-dir', type=click.Path(), help='Data directory')
@click.pass_context
def main(ctx, verbose, data_dir):
    """📦 modeldeck - Cube.js model deployment"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(verbose)
    if data_dir:
        set_config(Config.load(Path(data_dir)))


@main.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Start the model editor API server."""
    config = get_config()
    host = host or config.server.host
    port = port or config.server.port

    console.print(f"\n[bold blue]📦 Starting modeldeck server[/bold blue]")
    console.print(f"   Listening on: http://{host}:{port}")
    console.print(f"   ConfigMap:    {config.configmap_path}")
    console.print(f"   Press Ctrl+C to stop\n")

    from .api.server import run_server

    run_server(host=host, port=port, reload=reload)


# ============ models ============

@main.group()
def models():
    """Model listing, validation and deployment."""
    pass


@models.command('list')
def list_models():
    """List models in the ConfigMap."""
    try:
        found = _coordinator().list_models()
    except ModelDeckError as e:
        _fail(e)

    if not found:
        console.print("[yellow]No models deployed yet.[/yellow]")
        return

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Lines", justify="right")
    table.add_column("Kind")

    for name, text in sorted(found.items()):
        kind = "view" if "view(" in text and "cube(" not in text else "cube"
        table.add_row(name, str(len(text.splitlines())), kind)

    console.print(table)


@models.command('show')
@click.argument('name')
def show_model(name: str):
    """Print a model's source."""
    try:
        text = _coordinator().get_model(name)
    except ModelDeckError as e:
        _fail(e)

    console.print(Panel(Syntax(text, "javascript", line_numbers=True), title=name))


@models.command('validate')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
def validate_model(path: str):
    """Validate a model file without deploying it."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        message = _coordinator().validate(text)
    except ValidationError as e:
        _fail(e)

    console.print(f"[green]✓ {message}[/green]")


@models.command('deploy')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--name', '-n', help='Model name (defaults to the file name)')
def deploy_model(path: str, name: Optional[str]):
    """Deploy a model file to the cluster."""
    file_path = Path(path)
    model_name = name or file_path.stem
    text = file_path.read_text(encoding="utf-8")

    console.print(f"\n[bold]Deploying {model_name}[/bold]\n")
    try:
        result = run_async(_coordinator().deploy(model_name, text))
    except ModelDeckError as e:
        _fail(e)

    _print_result(result)


@models.command('delete')
@click.argument('name')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
def delete_model(name: str, yes: bool):
    """Delete a model from the cluster."""
    if not yes and not click.confirm(f"Delete {name}?"):
        return

    try:
        result = run_async(_coordinator().delete(name))
    except ModelDeckError as e:
        _fail(e)

    _print_result(result)


@main.command()
def resume():
    """Finish an interrupted deploy or delete."""
    coordinator = _coordinator()
    try:
        pending = coordinator.pending()
    except ModelDeckError as e:
        _fail(e)

    if pending is None:
        console.print("[dim]Nothing to resume.[/dim]")
        return

    console.print(
        f"\nResuming [cyan]{pending.operation}[/cyan] of [cyan]{pending.model_name}[/cyan] "
        f"after [dim]{pending.last_completed or 'start'}[/dim]\n"
    )
    try:
        result = run_async(coordinator.resume())
    except ModelDeckError as e:
        _fail(e)

    _print_result(result)


# ============ cluster ============

@main.group()
def cluster():
    """Cluster inspection."""
    pass


@cluster.command('status')
def cluster_status():
    """Show the Cube.js deployment status."""
    try:
        status = run_async(_coordinator().cluster_status())
    except ModelDeckError as e:
        _fail(e)

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Deployment", f"[cyan]{status['name']}[/cyan]")
    table.add_row("Namespace", str(status['namespace']))
    ready = status['readyReplicas']
    colour = "green" if ready and ready == status['replicas'] else "yellow"
    table.add_row("Ready", f"[{colour}]{ready}/{status['replicas']}[/{colour}]")
    for condition in status['conditions']:
        table.add_row(condition.get('type', '?'), f"{condition.get('status')} {condition.get('reason', '')}")

    console.print(table)


@cluster.command('logs')
@click.option('--tail', '-t', type=int, default=None, help='Number of lines')
def cluster_logs(tail: Optional[int]):
    """Show recent Cube.js logs."""
    try:
        lines = run_async(_coordinator().cluster_logs(tail))
    except ModelDeckError as e:
        _fail(e)

    for line in lines:
        console.print(line, markup=False, highlight=False)


@cluster.command('test-sql')
def test_sql():
    """Check that the Cube.js SQL API answers."""
    try:
        output = run_async(_coordinator().test_connection())
    except ModelDeckError as e:
        console.print("[red]✗ SQL API connection failed[/red]")
        _fail(e)

    console.print("[green]✓ SQL API is accessible[/green]")
    console.print(output, markup=False, highlight=False)


# ============ config ============

@main.group('config')
def config_group():
    """View and edit configuration."""
    pass


@config_group.command('show')
def config_show():
    """Print the effective configuration."""
    config = get_config()
    data = config.to_dict()
    if data["sql"].get("password"):
        data["sql"]["password"] = "********"
    console.print(f"[dim]{config.config_path}[/dim]")
    console.print_json(json.dumps(data))


@config_group.command('set')
@click.argument('key')
@click.argument('value')
def config_set(key: str, value: str):
    """Set a value, e.g. ``config set cluster.namespace analytics``."""
    config = get_config()
    section_name, _, field_name = key.partition('.')

    if not field_name:
        target, field_name = config, section_name
    else:
        target = getattr(config, section_name, None)
        if target is None or not hasattr(target, '__dataclass_fields__'):
            console.print(f"[red]Unknown section: {section_name}[/red]")
            sys.exit(1)

    if field_name not in getattr(target, '__dataclass_fields__', {}) or field_name == 'data_dir':
        console.print(f"[red]Unknown setting: {key}[/red]")
        sys.exit(1)

    current = getattr(target, field_name)
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    if isinstance(current, str) and not isinstance(parsed, str):
        parsed = value

    setattr(target, field_name, parsed)
    config.save()
    console.print(f"[green]✓ {key} = {parsed!r}[/green]")


if __name__ == '__main__':
    main()
