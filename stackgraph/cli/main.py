"""stackgraph command-line interface.

Exit codes:
    0    every resource succeeded
    1    the run finished with failed or skipped resources
    2    invalid graph, configuration or settings; nothing was executed
    130  the run was cancelled
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, NoReturn

import click

from stackgraph.app import StackGraphApp, create_app, run_command
from stackgraph.errors import StackGraphError
from stackgraph.models.results import ResourceStatus, RunReport, RunStatus
from stackgraph.secrets import reveal_all
from stackgraph.stacks import STACKS

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_CANCELLED = 130

_STATUS_EXIT = {
    RunStatus.SUCCEEDED: EXIT_OK,
    RunStatus.PARTIAL_FAILURE: EXIT_FAILED,
    RunStatus.FAILED: EXIT_FAILED,
    RunStatus.CANCELLED: EXIT_CANCELLED,
}

_STATUS_MARK = {
    ResourceStatus.SUCCEEDED: "+",
    ResourceStatus.FAILED: "x",
    ResourceStatus.SKIPPED: "-",
}


def _app() -> StackGraphApp:
    try:
        return create_app()
    except ValueError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc


def _fail_invalid(exc: StackGraphError) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    raise SystemExit(EXIT_INVALID)


def _print_report(report: RunReport, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(report.summary(), indent=2, default=str))
        return
    click.echo(f"{report.operation} {report.stack}: {report.status.value}")
    for result in report.results.values():
        line = f"  {_STATUS_MARK[result.status]} {result.operation} {result.name}"
        if result.error:
            line += f" ({result.error})"
        click.echo(line)
    if report.outputs:
        click.echo("Outputs:")
        for name, output in report.outputs.items():
            click.echo(f"  {name}: {output.display()}")
    for withheld in report.withheld:
        click.echo(f"  {withheld.name}: <withheld: {withheld.reason}>")


@click.group()
@click.version_option(package_name="stackgraph")
def cli() -> None:
    """Desired-state resource graphs for the agentic-AI Kubernetes workshop."""


@cli.command("stacks")
def list_stacks() -> None:
    """List the stacks that can be deployed."""
    for name in STACKS:
        click.echo(name)


@cli.command()
@click.argument("stack")
@click.option("--destroy", is_flag=True, help="Preview a destroy instead of an apply.")
@click.option("--all", "all_resources", is_flag=True, help="With --destroy, include resources missing from state.")
def preview(stack: str, destroy: bool, all_resources: bool) -> None:
    """Show the planned operations, batch by batch, without running them."""
    app = _app()
    try:
        plan = app.preview(stack, destroy=destroy, all_resources=all_resources)
    except StackGraphError as exc:
        _fail_invalid(exc)
    for index, batch in enumerate(plan.describe(), start=1):
        click.echo(f"batch {index}: {', '.join(batch)}")


def _run(command: str, stack: str, as_json: bool, all_resources: bool = False) -> None:
    app = _app()
    try:
        report = asyncio.run(run_command(app, command, stack, all_resources=all_resources))
    except StackGraphError as exc:
        _fail_invalid(exc)
    _print_report(report, as_json)
    raise SystemExit(_STATUS_EXIT[report.status])


@cli.command()
@click.argument("stack")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON.")
def up(stack: str, as_json: bool) -> None:
    """Create or update every resource of STACK."""
    _run("up", stack, as_json)


@cli.command()
@click.argument("stack")
@click.option("--all", "all_resources", is_flag=True, help="Delete every declared resource, not only those in state.")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON.")
def destroy(stack: str, all_resources: bool, as_json: bool) -> None:
    """Delete the resources of STACK in reverse dependency order."""
    _run("destroy", stack, as_json, all_resources=all_resources)


@cli.command()
@click.argument("stack")
@click.option("--show-secrets", is_flag=True, help="Print secret outputs in plaintext.")
@click.option("--json", "as_json", is_flag=True, help="Print outputs as a JSON object.")
def outputs(stack: str, show_secrets: bool, as_json: bool) -> None:
    """Print the outputs recorded by the last ``up`` of STACK."""
    app = _app()
    values: dict[str, Any] = {
        name: reveal_all(output.value) if show_secrets else output.display()
        for name, output in app.outputs(stack).items()
    }
    if as_json:
        click.echo(json.dumps(values, indent=2, default=str))
        return
    for name, value in values.items():
        click.echo(f"{name}: {value}")
