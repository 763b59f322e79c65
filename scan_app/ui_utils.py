# scan_app/ui_utils.py
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .models import MediaFolder, ScanningConflict, ScanSummary


def make_console(quiet: bool = False) -> Console:
    return Console(quiet=quiet, highlight=False)

def print_error(message: Any, quiet: bool = False) -> None:
    """Errors always reach stderr, styled unless quiet."""
    if quiet:
        plain = message.plain if isinstance(message, Text) else Text.from_markup(str(message)).plain
        print(plain, file=sys.stderr)
        return
    Console(file=sys.stderr, highlight=False).print(message)


def folders_table(folders: List[MediaFolder]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Kind", style="magenta")
    table.add_column("Active")
    table.add_column("Path", style="green")
    for folder in folders:
        table.add_row(str(folder.id), str(folder.media_kind),
                      "[green]yes[/green]" if folder.active else "[red]no[/red]", escape(folder.path))
    return table

def conflicts_table(conflicts: List[ScanningConflict], max_candidates: int = 3) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Kind", style="magenta")
    table.add_column("File", style="green", overflow="fold")
    table.add_column("Candidates", overflow="fold")
    for conflict in conflicts:
        shown = conflict.possible_matches[:max_candidates]
        lines = [escape(f"{c.external_id}: {c.name} ({(c.release_date or c.first_air_date or '?')[:4]})") for c in shown]
        extra = len(conflict.possible_matches) - len(shown)
        if extra > 0: lines.append(f"... +{extra} more")
        table.add_row(str(conflict.id), str(conflict.media_kind), escape(conflict.file_name),
                      "\n".join(lines) if lines else "[yellow]none (manual attention)[/yellow]")
    return table

def summary_table(summary: ScanSummary) -> Table:
    table = Table(title="Scan Summary", show_header=False)
    table.add_column("Item", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Removed movies", str(summary.removed_movies))
    table.add_row("Removed episodes", str(summary.removed_episodes))
    table.add_row("Removed series", str(summary.removed_series))
    for outcome, count in summary.outcomes.items():
        table.add_row(outcome.replace("_", " ").title(), str(count))
    return table


class RichProgressSink:
    """Progress callback that drives a rich progress bar. Use as a context manager."""

    def __init__(self, console: Console):
        self.progress = Progress(TextColumn("{task.description}"), BarColumn(),
                                 TextColumn("{task.percentage:>3.0f}%"), TimeElapsedColumn(),
                                 console=console, transient=False)
        self.task_id: Optional[TaskID] = None

    def __enter__(self) -> "RichProgressSink":
        self.progress.start()
        self.task_id = self.progress.add_task("Starting media scan", total=100)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.progress.stop()

    def __call__(self, status: str, progress: int, details: Optional[Dict[str, Any]] = None) -> None:
        if self.task_id is None: return
        description = status
        if details and "path" in details:
            description = f"{escape(status)} [dim]{escape(str(details['path']))}[/dim]"
        self.progress.update(self.task_id, completed=progress, description=description)
