"""staycheck CLI application.

This module provides the command-line interface for staycheck,
built with Typer.
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any, Optional
from uuid import uuid4

import typer
from rich.console import Console
from rich.table import Table

from staycheck._version import __version__

app = typer.Typer(
    name="staycheck",
    help="Validation and confidence scoring for generated property-management responses",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"staycheck v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """staycheck - validate generated responses before they reach a guest.

    Check. Correct. Calibrate.
    """
    pass


def _load_requests(data: Any, defaults: dict[str, Any]) -> list[dict[str, Any]]:
    """Normalize a file payload into ``{response, context, options}`` items.

    A bare document (no ``response`` key) is validated with the context
    given on the command line.
    """
    items = data if isinstance(data, list) else [data]
    requests = []
    for item in items:
        if isinstance(item, dict) and "response" in item:
            context = {**defaults, **(item.get("context") or {})}
            requests.append({"response": item["response"], "context": context, "options": item.get("options")})
        else:
            requests.append({"response": item, "context": dict(defaults), "options": None})
    return requests


async def _validate_all(requests: list[dict[str, Any]], options: dict[str, Any]) -> Any:
    from staycheck.pipeline.service import ValidationService

    async with ValidationService() as service:
        return await service.validate_batch(requests, options)


@app.command()
def validate(
    path: Annotated[Path, typer.Argument(help="JSON file with a response or a list of requests")],
    response_type: Annotated[str, typer.Option(help="Response type for bare documents")] = "property_info",
    domain: Annotated[str, typer.Option(help="Domain: property_management or general")] = "property_management",
    session: Annotated[str, typer.Option(help="Session id")] = "cli",
    role: Annotated[Optional[str], typer.Option(help="User role (admin, guest, ...)")] = None,
    auto_correct: Annotated[bool, typer.Option(help="Apply high-confidence corrections")] = True,
    output: Annotated[Optional[Path], typer.Option(help="Output file for the JSON report")] = None,
) -> None:
    """Validate one response or a batch of requests from a JSON file."""
    if not path.exists():
        console.print(f"[red]Error: Path not found: {path}[/red]")
        raise typer.Exit(1)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1)

    defaults = {
        "requestId": str(uuid4()),
        "sessionId": session,
        "responseType": response_type,
        "domain": domain,
        "userRole": role,
    }
    requests = _load_requests(data, defaults)
    if isinstance(data, list):
        # Distinct request ids within one batch
        for i, request in enumerate(requests):
            if request["context"]["requestId"] == defaults["requestId"]:
                request["context"]["requestId"] = f"{defaults['requestId']}-{i}"

    console.print(f"[blue]Validating {len(requests)} response(s) from {path}...[/blue]")

    from staycheck.core.exceptions import StaycheckError

    try:
        report = asyncio.run(_validate_all(requests, {"enableAutoCorrection": auto_correct}))
    except StaycheckError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    # Display results
    table = Table(title="Validation Results")
    table.add_column("#", style="cyan")
    table.add_column("Valid")
    table.add_column("Confidence", style="green")
    table.add_column("Errors")
    table.add_column("Warnings")
    table.add_column("Corrections")

    for item in report.results:
        if not item.success:
            table.add_row(str(item.index), "[red]failed[/red]", "-", item.error or "", "", "")
            continue
        result = item.result
        table.add_row(
            str(item.index),
            "[green]yes[/green]" if result.is_valid else "[red]no[/red]",
            f"{result.confidence:.2f}",
            str(len(result.errors)),
            str(len(result.warnings)),
            f"{len(result.applied_corrections)}/{len(result.corrections)}",
        )
    console.print(table)

    for item in report.results:
        if item.result is None or not item.result.errors:
            continue
        console.print(f"\n[yellow]Issues for #{item.index}:[/yellow]")
        for issue in item.result.errors:
            console.print(f"  {issue}")

    console.print(
        f"\nTotal: {report.summary.total}  Successful: {report.summary.successful}  "
        f"Failed: {report.summary.failed}  ({report.summary.processing_time_ms:.1f} ms)"
    )

    # Save report if requested
    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(report.to_dict(), f, indent=2, default=str)
        console.print(f"\n[green]Report saved to {output}[/green]")


@app.command()
def facts(
    path: Annotated[Optional[Path], typer.Option(help="Fact database YAML (defaults to the bundled one)")] = None,
    category: Annotated[Optional[str], typer.Option(help="Only show this category")] = None,
) -> None:
    """List the entries of the fact database."""
    from staycheck.core.exceptions import ConfigurationError
    from staycheck.facts.store import FactStore

    try:
        store = FactStore.default(path)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    entries = store.by_category(category) if category else list(store)

    table = Table(title="Fact Database")
    table.add_column("Key", style="cyan")
    table.add_column("Category")
    table.add_column("Source")
    table.add_column("Confidence", style="green")
    table.add_column("Last Updated")

    for entry in entries:
        table.add_row(
            entry.key,
            f"{entry.category}/{entry.subcategory}" if entry.subcategory else entry.category,
            entry.source,
            f"{entry.confidence:.2f}",
            entry.last_updated.isoformat(),
        )

    console.print(table)
    console.print(f"\n{len(entries)} of {len(store)} entries")


if __name__ == "__main__":
    app()
