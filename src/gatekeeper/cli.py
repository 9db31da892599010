"""
Gatekeeper CLI
==============

Command line entry point: validate or score a source file against the
built-in rule catalog, list the catalog, show version info.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from gatekeeper import __version__
from gatekeeper.rules.defaults.catalog import build_default_catalog
from gatekeeper.rules.domain.enums import Severity
from gatekeeper.scoring.application.truth_scoring import TruthScoring
from gatekeeper.shared.infrastructure.config import settings
from gatekeeper.shared.infrastructure.logging import configure_logging
from gatekeeper.validation.application.pattern_validator import PatternValidator

app = typer.Typer(
    name="gatekeeper",
    help="Code validation and adaptive quality gates",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL: "red bold",
    Severity.HIGH: "yellow",
    Severity.MEDIUM: "blue",
    Severity.LOW: "dim",
}


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(code=2) from e


@app.callback()
def _setup() -> None:
    configure_logging(stream=sys.stderr)


@app.command()
def validate(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to validate"),
    strict: bool = typer.Option(False, "--strict", help="Fail on any violation, not only CRITICAL ones"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Run pre- and post-execution validation over a file."""
    code = _read_source(file)
    validator = PatternValidator(
        strict_mode=strict or settings.strict_mode,
        latency_budget_ms=settings.validator_budget_ms,
    )
    pre = validator.validate_pre(code)
    post = validator.validate_post({"code": code})
    passed = pre.passed and post.passed

    if as_json:
        typer.echo(json.dumps({"file": str(file), "passed": passed, "pre": pre.to_json(), "post": post.to_json()}))
        raise typer.Exit(code=0 if passed else 1)

    if pre.violations:
        table = Table(title="Violations", show_lines=False)
        table.add_column("Severity")
        table.add_column("Type")
        table.add_column("Message")
        table.add_column("Suggestion", style="dim")
        for v in pre.violations:
            style = SEVERITY_STYLES.get(v.severity, "white")
            table.add_row(f"[{style}]{v.severity.value}[/{style}]", v.type, v.message, v.suggestion or "")
        console.print(table)

    for issue in post.issues:
        console.print(f"  [yellow]●[/yellow] {issue.message} [dim]({issue.suggestion})[/dim]")

    status = "[green bold]PASSED[/green bold]" if passed else "[red bold]FAILED[/red bold]"
    console.print(
        f"\n{status}  violations: {pre.total_count} (critical: {pre.critical_count})  "
        f"quality: {post.quality_score}/100"
    )
    raise typer.Exit(code=0 if passed else 1)


@app.command()
def score(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to score"),
    threshold: Optional[float] = typer.Option(None, "--threshold", min=0.0, max=1.0, help="Pass threshold"),
    as_json: bool = typer.Option(False, "--json", help="Print the score record as JSON"),
):
    """Compute the truth score of a file."""
    code = _read_source(file)
    scoring = TruthScoring(
        PatternValidator(latency_budget_ms=settings.validator_budget_ms),
        threshold=settings.truth_threshold,
        warning_threshold=settings.warning_threshold,
        critical_threshold=settings.critical_threshold,
    )
    record = scoring.calculate_score(code, threshold=threshold)

    if as_json:
        typer.echo(json.dumps(record.to_json()))
        raise typer.Exit(code=0 if record.passed else 1)

    components = record.component_scores
    table = Table(show_header=False, box=None)
    table.add_row("Overall", f"[bold]{record.overall_score}[/bold] ({record.status.value})")
    table.add_row("Security", str(components.security))
    table.add_row("Quality", str(components.quality))
    table.add_row("Performance", str(components.performance))
    table.add_row("Threshold", str(record.threshold))

    title = "[green bold]PASSED[/green bold]" if record.passed else "[red bold]FAILED[/red bold]"
    console.print(Panel(table, title=title, expand=False))
    raise typer.Exit(code=0 if record.passed else 1)


@app.command()
def rules():
    """List the built-in detection rules."""
    table = Table(title="Rule Catalog")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Violation type")

    for rule in build_default_catalog():
        style = SEVERITY_STYLES.get(rule.severity, "white")
        table.add_row(rule.name, rule.category.value, f"[{style}]{rule.severity.value}[/{style}]", rule.violation_type)

    console.print(table)


@app.command()
def version():
    """Show Gatekeeper version info."""
    table = Table(show_header=False, box=None)
    table.add_row("Gatekeeper Core", f"[bold green]v{__version__}[/bold green]")
    table.add_row("Python", sys.version.split()[0])
    table.add_row("Platform", sys.platform)

    console.print(Panel(table, title="[bold blue]Gatekeeper[/bold blue]", expand=False))


def main():
    app()


if __name__ == "__main__":
    main()
