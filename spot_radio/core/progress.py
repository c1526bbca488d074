"""
Progress bar for batch track resolution, built on the Rich library.

Used by the CLI when a list of Spotify tracks is resolved to YouTube Music
(`spot-radio resolve`, `spot-radio liked`, `spot-radio radio`). The bar
advances once per resolved batch, since batches complete as a unit.

Usage:
    with ResolveProgressBar(total=len(tracks)) as progress:
        async for batch, items in resolver.resolve_batches(tracks):
            progress.update(resolved=len(items), unmatched=len(batch) - len(items))
"""

from rich import get_console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",  # Magenta/purple
    "bar.finished": "rgb(114,156,31)",  # Green when done
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})


class ResolveProgressBar:
    """
    Progress bar for YouTube Music resolution.

    Displays:
    - Description (e.g., "Resolving")
    - Status: ✓ resolved, ✗ unmatched
    - Progress bar
    - Percentage

    Example:
        Resolving       ✓ 45  ✗ 2          ━━━━━━━━━━━━━━━━━  47%
    """

    def __init__(self, total: int, description: str = "Resolving") -> None:
        self.total = total
        self.description = description
        self.completed = 0
        self.resolved = 0
        self.unmatched = 0

        self.console = get_console()

        self.progress = Progress(
            TextColumn("[white]{task.description:<15}"),
            TextColumn("{task.fields[status]}", style="white"),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: TaskID | None = None
        self._started = False

    def __enter__(self) -> "ResolveProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        """Start the progress bar (can be called manually)."""
        if not self._started:
            self.console.push_theme(PROGRESS_THEME)
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                status=self._get_status_text(),
            )
            self._started = True

    def stop(self) -> None:
        """Stop the progress bar and restore the console theme."""
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def _get_status_text(self) -> str:
        return f"[green]✓ {self.resolved}[/green]  [red]✗ {self.unmatched}[/red]"

    def update(self, resolved: int, unmatched: int = 0) -> None:
        """
        Record a finished batch.

        Args:
            resolved: Tracks in the batch that produced a playable item.
            unmatched: Tracks in the batch that were skipped.
        """
        self.resolved += resolved
        self.unmatched += unmatched
        self.completed += resolved + unmatched

        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )
