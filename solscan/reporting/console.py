# Rich console output: render an AnalysisResult for terminal display.

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from solscan.findings.models import AnalysisResult, FileAnalysisResult, Issue
from solscan.plugins.models import get_field
from solscan.rules.base import Rule

# Severity → Rich style
SEVERITY_STYLE = {
    "error": "bold red",
    "warning": "bold yellow",
    "info": "bold blue",
}

DEFAULT_SEVERITY_STYLE = "bold white"


def _severity_style(severity: str) -> str:
    return SEVERITY_STYLE.get(severity.lower(), DEFAULT_SEVERITY_STYLE)


def _display_path(path: str, base: Optional[Path] = None) -> str:
    """Return path relative to base when possible, with forward slashes."""
    if base is not None:
        try:
            return Path(path).relative_to(base).as_posix()
        except ValueError:
            pass
    return str(path).replace("\\", "/")


def print_result(
    result: AnalysisResult,
    console: Optional[Console] = None,
    base_path: Optional[Path] = None,
    verbose: bool = False,
) -> None:
    """
    Print an analysis result: one table of issues per file, colored by severity,
    followed by a summary panel. Files that could not be read or parsed are
    listed with their error. With verbose, rule diagnostics are shown too.
    """
    console = console or Console()

    for file_result in result.files:
        if not file_result.issues and not file_result.error and not (verbose and file_result.diagnostics):
            continue
        _print_file(file_result, console, base_path, verbose)

    _print_summary(result, console)


def _print_file(
    file_result: FileAnalysisResult,
    console: Console,
    base_path: Optional[Path],
    verbose: bool,
) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold cyan]{_display_path(file_result.file_path, base_path)}[/bold cyan]",
            box=box.SIMPLE_HEAD,
            border_style="blue",
            padding=(0, 1),
        )
    )

    if file_result.error:
        console.print(f"  [bold red]error[/bold red] {file_result.error}")

    issues: Sequence[Issue] = sorted(
        file_result.issues, key=lambda i: (i.location.start.line, i.location.start.column)
    )
    if issues:
        table = Table(
            show_header=True,
            header_style="bold magenta",
            box=box.SIMPLE,
            padding=(0, 1),
            expand=False,
        )
        table.add_column("Line", justify="right", style="dim", width=5)
        table.add_column("Col", justify="right", style="dim", width=4)
        table.add_column("Severity", width=10)
        table.add_column("Rule", width=28)
        table.add_column("Message", style="white")

        for issue in issues:
            start = issue.location.start
            table.add_row(
                str(start.line),
                str(start.column),
                Text(issue.severity.value.upper(), style=_severity_style(issue.severity.value)),
                Text(f"[{issue.rule_id}]", style="dim"),
                issue.message,
            )
        console.print(table)

    if verbose:
        for diagnostic in file_result.diagnostics:
            console.print(f"  [dim][rule failed][/dim] [{diagnostic.rule_id}] {diagnostic.message}")
        if file_result.cached:
            console.print("  [dim](cached)[/dim]")


def _print_summary(result: AnalysisResult, console: Console) -> None:
    summary = result.summary
    total = result.total_issues
    parts = [f"[bold]{total} issue{'s' if total != 1 else ''}[/bold]"]
    for label, count in (("error", summary.errors), ("warning", summary.warnings), ("info", summary.info)):
        if count:
            parts.append(f"[{_severity_style(label)}]{count} {label}[/]")
    parts.append(f"[dim]{len(result.files)} file(s) in {result.duration:.2f}s[/dim]")

    failed = sum(1 for f in result.files if f.error)
    if failed:
        parts.append(f"[bold red]{failed} unreadable[/bold red]")

    console.print()
    console.print(
        Panel(
            " | ".join(parts),
            title="Summary",
            border_style="red" if summary.errors else ("yellow" if total > 0 else "green"),
            box=box.ROUNDED,
        )
    )


def print_rules(rules: dict[str, Rule], console: Optional[Console] = None) -> None:
    """Print a table of rule IDs with their default severity, category and title."""
    console = console or Console()
    table = Table(
        title="Rules",
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        padding=(0, 1),
    )
    table.add_column("ID", style="white")
    table.add_column("Severity", width=10)
    table.add_column("Category", style="dim")
    table.add_column("Title")

    for rule_id, rule in rules.items():
        metadata = rule.metadata
        severity = get_field(metadata, "severity")
        severity_text = getattr(severity, "value", str(severity or "warning"))
        category = get_field(metadata, "category")
        table.add_row(
            rule_id,
            Text(severity_text.upper(), style=_severity_style(severity_text)),
            str(getattr(category, "value", category) or ""),
            str(get_field(metadata, "title") or ""),
        )
    console.print(table)
