"""schemadrift CLI - cross-reference a Drizzle schema with its code and report drift."""
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn, TimeElapsedColumn
from rich.table import Table

from .analyzer.pipeline import STAGES, PipelineResult, run_pipeline
from .config import Config, __version__, env_log_level, get_config
from .errors import ConfigurationError
from .utils.console import SafeConsole
from .utils.logger import configure_logging

app = typer.Typer(
    name="schemadrift",
    help="Find unused schema elements, schema drift and optimization opportunities",
    add_completion=False,
)
console = SafeConsole()

# Detail tables show at most this many rows
PREVIEW_ROWS = 10


def _load_config(project_path: Optional[str], workers: Optional[int]) -> Config:
    try:
        overrides = {'max_workers': workers} if workers is not None else {}
        return get_config(project_path, **overrides)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(e.message)}")
        raise typer.Exit(1)


def _run(config: Config, show_progress: bool) -> PipelineResult:
    if not show_progress:
        return run_pipeline(config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        transient=True,
        console=console,
    ) as progress:
        task = progress.add_task("Starting...", total=len(STAGES))
        started = []

        def on_stage(stage: str):
            if started:
                progress.advance(task)
            started.append(stage)
            progress.update(task, description=f"Stage {len(started)}/{len(STAGES)}: {stage}")

        result = run_pipeline(config, progress=on_stage)
        progress.advance(task)
    return result


def _summary_table(title: str, summary: dict) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in summary.items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items()) or "-"
        elif isinstance(value, list):
            value = ", ".join(str(v) for v in value) or "-"
        table.add_row(key.replace('_', ' '), escape(str(value)))
    return table


def _print_unused(result: PipelineResult):
    candidates = result.unused.candidates
    if not candidates:
        console.print("[bold green]No unused schema elements found![/bold green]\n")
        return

    table = Table(title=f"Unused Elements (first {min(PREVIEW_ROWS, len(candidates))} of {len(candidates)})")
    table.add_column("Element", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Confidence", style="magenta")
    table.add_column("Action", style="bold")
    table.add_column("Priority", style="green")
    for candidate in candidates[:PREVIEW_ROWS]:
        table.add_row(
            escape(candidate.element_name),
            candidate.element_type,
            candidate.confidence,
            candidate.recommended_action,
            candidate.priority,
        )
    console.print(table)


def _print_findings(result: PipelineResult):
    findings = result.drift.findings
    if not findings:
        console.print("[bold green]No schema drift detected![/bold green]\n")
        return

    severity_style = {'critical': 'bold red', 'major': 'red', 'minor': 'yellow', 'info': 'dim'}
    table = Table(title=f"Drift Findings (first {min(PREVIEW_ROWS, len(findings))} of {len(findings)})")
    table.add_column("Severity")
    table.add_column("Element", style="cyan")
    table.add_column("Drift", style="magenta")
    table.add_column("Description", no_wrap=False)
    for finding in findings[:PREVIEW_ROWS]:
        style = severity_style[finding.severity]
        table.add_row(
            f"[{style}]{finding.severity}[/{style}]",
            escape(finding.element_name),
            finding.drift_type,
            escape(finding.description),
        )
    console.print(table)


def _print_opportunities(result: PipelineResult):
    opportunities = result.performance.opportunities
    if not opportunities:
        return

    table = Table(title="Optimization Opportunities (ranked)")
    table.add_column("Type", style="cyan")
    table.add_column("Description", no_wrap=False)
    table.add_column("Effort", style="yellow")
    table.add_column("Risk", style="magenta")
    table.add_column("Time", style="green")
    for opportunity in opportunities[:PREVIEW_ROWS]:
        table.add_row(
            opportunity.type,
            escape(opportunity.description),
            opportunity.effort,
            opportunity.risk,
            opportunity.estimated_time,
        )
    console.print(table)


@app.command()
def audit(
    project_path: Optional[str] = typer.Argument(None, help="Project root (default: SCHEMADRIFT_ROOT or cwd)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Threads for per-file scans"),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Also write the full JSON report here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress events to stderr"),
):
    """Run the full pipeline and print summaries with the first rows of each detail list."""
    configure_logging("INFO" if verbose else env_log_level())
    config = _load_config(project_path, workers)

    console.print(f"[bold blue]Analyzing project:[/bold blue] {escape(str(config.project_root))}\n")
    result = _run(config, show_progress=not verbose)

    console.print(_summary_table("Schema", result.schema.summary))
    console.print(_summary_table("Usage", result.usage.summary))
    _print_unused(result)
    _print_findings(result)
    _print_opportunities(result)
    console.print(_summary_table("Performance", result.performance.summary))

    health = result.drift.schema_health
    color = 'green' if health >= 80 else 'yellow' if health >= 50 else 'red'
    console.print(f"\n[bold {color}]Schema health: {health}/100[/bold {color}]")

    if result.warnings:
        console.print(f"\n[bold yellow]Warnings ({len(result.warnings)}):[/bold yellow]")
        for warning in result.warnings[:PREVIEW_ROWS]:
            console.print(f"  {escape(warning)}")

    if json_out is not None:
        json_out.write_text(result.to_json(), encoding='utf-8')
        console.print(f"\n[dim]Full report written to {escape(str(json_out))}[/dim]")


@app.command()
def report(
    project_path: Optional[str] = typer.Argument(None, help="Project root (default: SCHEMADRIFT_ROOT or cwd)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON here instead of stdout"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Threads for per-file scans"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit log events as JSON"),
):
    """Run the full pipeline and emit the deterministic JSON report."""
    configure_logging(env_log_level(), json_format=json_logs)
    config = _load_config(project_path, workers)

    text = run_pipeline(config).to_json()
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding='utf-8')
        console.print(f"[dim]Report written to {escape(str(output))}[/dim]")


def _version_callback(value: bool):
    if value:
        typer.echo(f"schemadrift {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """schemadrift - schema usage cross-reference and drift detection."""
    pass


if __name__ == "__main__":
    app()
