"""CLI interface for the BTEB result resolver."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

app = typer.Typer(
    name="bteb-results",
    help="Resolve BTEB examination results across configured sources",
    add_completion=False,
)
console = Console()

RegistryOption = typer.Option(
    None, "--registry", "-r", help="YAML source registry (defaults to $RESULTS_REGISTRY)"
)


def get_resolver(registry: Path | None):
    """Build a resolver from the environment and optional registry file."""
    from .config import load_settings
    from .exceptions import UnknownSource
    from .logging import configure_logging
    from .resolver import ResultResolver

    if registry is not None and not registry.exists():
        console.print(f"[red]Error: Registry not found: {registry}[/red]")
        raise typer.Exit(1)

    settings = load_settings(registry)
    configure_logging(settings.log_level)
    try:
        return ResultResolver.from_settings(settings)
    except UnknownSource as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def resolve(
    roll: str = typer.Argument(..., help="Roll number"),
    regulation: str = typer.Option(..., "--regulation", "-g", help="Regulation year"),
    program: str = typer.Option(..., "--program", "-p", help="Program / exam name"),
    source: str = typer.Option(None, "--source", "-s", help="Make this source current first"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON payload"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the JSON payload to a file"),
    registry: Path = RegistryOption,
):
    """Resolve one student's result."""
    from .exceptions import InvalidQuery, UnknownSource

    resolver = get_resolver(registry)

    async def run():
        async with resolver:
            if source:
                resolver.registry.set_active(source)
            return await resolver.resolve_request(
                {"rollNo": roll, "regulation": regulation, "program": program}
            )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Resolving...", total=None)
            result = asyncio.run(run())
    except (InvalidQuery, UnknownSource) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)

    payload = result.to_payload()
    if output:
        with open(output, "w") as f:
            json.dump(payload, f, indent=2)
        console.print(f"[green]Result saved to {output}[/green]")

    if as_json:
        console.print_json(data=payload)
    elif result.success:
        _display_result(result)
    else:
        console.print(Panel(
            f"{result.error}\n[dim]Tried: {', '.join(result.attempted)}[/dim]",
            title="[bold red]Not found[/bold red]",
        ))

    if not result.success:
        raise typer.Exit(1)


@app.command("sources")
def list_sources(registry: Path = RegistryOption):
    """List configured sources in search order."""
    resolver = get_resolver(registry)
    order = [d.id for d in resolver.registry.search_order()]

    table = Table(title="Sources")
    table.add_column("ID")
    table.add_column("Kind")
    table.add_column("Endpoint")
    table.add_column("Active")
    table.add_column("Order")
    table.add_column("Description")

    for descriptor in resolver.registry.list_sources():
        marker = " *" if descriptor.id == resolver.registry.current else ""
        table.add_row(
            descriptor.id + marker,
            descriptor.kind,
            descriptor.endpoint,
            "yes" if descriptor.active else "no",
            str(order.index(descriptor.id) + 1) if descriptor.id in order else "-",
            descriptor.description,
        )

    console.print(table)
    console.print("[dim]* current source[/dim]")


@app.command()
def health(registry: Path = RegistryOption):
    """Check connectivity of the current source."""
    resolver = get_resolver(registry)

    async def run():
        async with resolver:
            return await resolver.health()

    report = asyncio.run(run())
    console.print_json(data=report)
    if report["status"] != "healthy":
        raise typer.Exit(1)


@app.command()
def regulations(
    program: str = typer.Argument(..., help="Program / exam name"),
    registry: Path = RegistryOption,
):
    """List regulation years known for a program."""
    resolver = get_resolver(registry)

    async def run():
        async with resolver:
            return await resolver.regulations(program)

    years = asyncio.run(run())
    if not years:
        console.print(f"[yellow]No regulations found for '{program}'[/yellow]")
        return
    console.print_json(data={"regulations": years})


def _display_result(result):
    """Render a canonical result."""
    institute = result.institute_data
    console.print(Panel(
        f"[bold]Roll:[/bold] {result.roll}   [bold]Regulation:[/bold] {result.regulation}\n"
        f"[bold]Exam:[/bold] {result.exam}\n"
        f"[bold]Institute:[/bold] {institute.name} ({institute.code}), {institute.district}",
        title=f"Result [dim](source: {result.source})[/dim]",
    ))

    if result.result_data:
        table = Table(title="Semester Results")
        table.add_column("Semester")
        table.add_column("GPA")
        table.add_column("Passed")
        table.add_column("Referred Subjects")
        table.add_column("Published")

        for entry in result.result_data:
            table.add_row(
                entry.semester,
                entry.gpa,
                "[green]yes[/green]" if entry.passed else "[red]no[/red]",
                ", ".join(str(s) for s in entry.result.ref_subjects),
                entry.published_at,
            )
        console.print(table)

    if result.cgpa_data:
        table = Table(title="CGPA")
        table.add_column("Semester")
        table.add_column("CGPA")
        for entry in result.cgpa_data:
            table.add_row(entry.semester, entry.cgpa)
        console.print(table)


if __name__ == "__main__":
    app()
