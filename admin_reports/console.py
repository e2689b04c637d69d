"""
Colour-coded console narration for report runs.

Status lines go to stdout through a rich Console; diagnostic logging goes
through the `logging` module (see `configure_logging`).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

RATING_STYLES = {
    "Healthy": "bold green",
    "Fair": "bold yellow",
    "Degraded": "bold dark_orange",
    "Critical": "bold red",
}

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "informational": "dim",
}


class Narrator:
    """Prints the step-by-step story of a report run."""

    def __init__(self, console: Optional[Console] = None, quiet: bool = False):
        self.console = console or Console(highlight=False)
        self.quiet = quiet

    def _print(self, *args, **kwargs):
        if not self.quiet:
            self.console.print(*args, **kwargs)

    def banner(self, title: str, subtitle: str = "READ-ONLY — no changes will be made"):
        self._print(Panel(f"[bold]{title}[/bold]\n[dim]{subtitle}[/dim]", border_style="blue"))

    def step(self, number: int, total: int, text: str):
        self._print(f"\n[bold blue][{number}/{total}][/bold blue] [bold]{text}[/bold]")

    def info(self, text: str):
        self._print(f"  [cyan]{text}[/cyan]")

    def success(self, text: str):
        self._print(f"  [green]✔ {text}[/green]")

    def warning(self, text: str):
        self._print(f"  [yellow]⚠ {text}[/yellow]")

    def error(self, text: str):
        # Errors are shown even in quiet mode
        self.console.print(f"  [bold red]✖ {text}[/bold red]")

    def summary_table(self, title: str, rows: Iterable[tuple[str, object]]):
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        for label, value in rows:
            table.add_row(str(label), str(value))
        self._print(table)

    def findings(self, findings: list, limit: int = 10):
        if not findings:
            self.success("No issues detected")
            return
        table = Table(title=f"Top issues ({min(limit, len(findings))} of {len(findings)})")
        table.add_column("Severity")
        table.add_column("Check")
        table.add_column("Subject")
        table.add_column("-pts", justify="right")
        for f in findings[:limit]:
            style = SEVERITY_STYLES.get(f.severity, "")
            table.add_row(
                f"[{style}]{f.severity}[/{style}]" if style else f.severity,
                f.title,
                f.subject,
                f"{f.deduction:g}",
            )
        self._print(table)

    def health(self, score):
        style = RATING_STYLES.get(score.rating, "bold")
        self._print(
            f"\n  Health score: [{style}]{score.score:.0f}/100 ({score.rating})[/{style}]"
        )

    def files(self, paths: Iterable[Path]):
        for p in paths:
            self._print(f"  [green]→[/green] {p}")


def configure_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """
    Route the `admin_reports` loggers to stderr via rich, and optionally to
    a plain-text log file kept next to the report output.
    """
    root = logging.getLogger("admin_reports")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        root.addHandler(file_handler)
