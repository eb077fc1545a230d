"""
Progress bars for chester using the Rich library.

Both batch jobs (fetching audio and importing records) show a bar with
per-outcome counters. The bars share a base class and one theme.

Usage:
    from chester.core.progress import FetchProgressBar

    with FetchProgressBar(total=100) as progress:
        for track_id in track_ids:
            progress.update(success=fetch(track_id))
"""

from abc import ABC, abstractmethod
from typing import Optional

from rich import get_console
from rich.console import JustifyMethod, OverflowMethod
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    Task,
    TaskID,
)
from rich.style import StyleType
from rich.text import Text
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})


class SizedTextColumn(ProgressColumn):
    """Text column truncated (with ellipsis) to a fixed width."""

    def __init__(
        self,
        text_format: str,
        style: StyleType = "none",
        justify: JustifyMethod = "left",
        overflow: Optional[OverflowMethod] = None,
        width: int = 20,
    ) -> None:
        self.text_format = text_format
        self.justify: JustifyMethod = justify
        self.style = style
        self.overflow: Optional[OverflowMethod] = overflow
        self.width = width
        super().__init__()

    def render(self, task: Task) -> Text:
        text = Text.from_markup(
            self.text_format.format(task=task), style=self.style, justify=self.justify
        )
        text.truncate(max_width=self.width, overflow=self.overflow, pad=True)
        return text


class BaseProgressBar(ABC):
    """
    Abstract base class for all progress bars.

    Provides the Rich Progress instance, context manager support and
    manual start/stop. Subclasses implement _get_status_text() and update().
    """

    def __init__(
        self,
        total: int,
        description: str,
        status_width: int = 35,
        disable: bool = False
    ):
        self.total = total
        self.description = description
        self.completed = 0

        self.console = get_console()

        self.progress = Progress(
            SizedTextColumn(
                "[white]{task.description}",
                overflow="ellipsis",
                width=15,
            ),
            SizedTextColumn(
                "{task.fields[status]}",
                width=status_width,
                style="white",
            ),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            transient=False,
            refresh_per_second=10,
            disable=disable,
        )

        self.task_id: Optional[TaskID] = None
        self._started = False

    def __enter__(self) -> "BaseProgressBar":
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
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def _update_progress(self) -> None:
        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )

    @abstractmethod
    def _get_status_text(self) -> str:
        """Return the status string (Rich markup) shown next to the bar."""

    @abstractmethod
    def update(self, *args, **kwargs) -> None:
        """Record one finished item. Signature varies by bar."""


class FetchProgressBar(BaseProgressBar):
    """
    Progress bar for the fetch driver.

    Example:
        Fetching        ✓ 120  ✗ 3  ⊘ 5        ━━━━━━━━━━━━━━━━━  64%
    """

    def __init__(self, total: int, description: str = "Fetching", disable: bool = False):
        super().__init__(total=total, description=description, disable=disable)
        self.downloaded = 0
        self.failed = 0
        self.skipped = 0

    def _get_status_text(self) -> str:
        parts = [
            f"[green]✓ {self.downloaded}[/green]",
            f"[red]✗ {self.failed}[/red]",
        ]
        if self.skipped > 0:
            parts.append(f"[yellow]⊘ {self.skipped}[/yellow]")
        return "  ".join(parts)

    def update(self, success: bool, skipped: bool = False) -> None:
        """
        Record a finished track.

        Args:
            success: Whether the download succeeded.
            skipped: Whether the track was skipped (file already present).
        """
        self.completed += 1
        if skipped:
            self.skipped += 1
        elif success:
            self.downloaded += 1
        else:
            self.failed += 1

        self._update_progress()


class ImportProgressBar(BaseProgressBar):
    """
    Progress bar for the batch importer.

    Example:
        Importing       ✓ 40  ⊘ 2  ✗ 1         ━━━━━━━━━━━━━━━━━  43%
    """

    def __init__(self, total: int, description: str = "Importing", disable: bool = False):
        super().__init__(total=total, description=description, disable=disable)
        self.imported = 0
        self.skipped = 0
        self.failed = 0

    def _get_status_text(self) -> str:
        return (
            f"[green]✓ {self.imported}[/green]  "
            f"[yellow]⊘ {self.skipped}[/yellow]  "
            f"[red]✗ {self.failed}[/red]"
        )

    def update(self, imported: bool, skipped: bool = False) -> None:
        self.completed += 1
        if skipped:
            self.skipped += 1
        elif imported:
            self.imported += 1
        else:
            self.failed += 1

        self._update_progress()


__all__ = [
    "PROGRESS_THEME",
    "SizedTextColumn",
    "BaseProgressBar",
    "FetchProgressBar",
    "ImportProgressBar",
]
