"""Progress reporting for import runs."""

from typing import Optional, Protocol, runtime_checkable
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from .logging_config import get_logger

logger = get_logger(__name__)

BAR_WIDTH = 40


@runtime_checkable
class ProgressSink(Protocol):
    """Receives ``(done, total, elapsed_seconds)`` after every finished record."""

    def on_progress(self, done: int, total: int, elapsed_seconds: int) -> None: ...


def format_progress(done: int, total: int, elapsed_seconds: int, width: int = BAR_WIDTH) -> str:
    """
    Render a one-line text progress bar with an ETA.

    Args:
        done: Records finished so far
        total: Records in the run
        elapsed_seconds: Whole seconds since the run started
        width: Bar width in characters

    Returns:
        e.g. ``[====    ] 1/2 (50.0%) Elapsed: 3s ETA: 3s``
    """
    percent = round(done / total * 100, 1) if total > 0 else 100.0
    per_item = elapsed_seconds / done if done > 0 else 0
    remaining = round((total - done) * per_item) if per_item > 0 else 0
    filled = min(width, round(width * done / max(1, total)))
    bar = "=" * filled + " " * (width - filled)
    return f"[{bar}] {done}/{total} ({percent}%) Elapsed: {elapsed_seconds}s ETA: {remaining}s"


class LoggingProgressSink:
    """Log progress every N records and once the run is complete."""

    def __init__(self, report_every: int = 100):
        self.report_every = max(1, report_every)
        self._last_reported: Optional[int] = None

    def __enter__(self) -> "LoggingProgressSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    def on_progress(self, done: int, total: int, elapsed_seconds: int) -> None:
        if done == self._last_reported:
            return
        if done % self.report_every == 0 or done >= total:
            self._last_reported = done
            logger.info(f"Progress: {format_progress(done, total, elapsed_seconds)}")


class RichProgressSink:
    """Live rich progress bar; use as a context manager."""

    def __init__(self, console: Optional[Console] = None, description: str = "Importing products..."):
        self.description = description
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.1f}%"),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=console,
        )
        self._task: Optional[TaskID] = None

    def __enter__(self) -> "RichProgressSink":
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.progress.stop()

    def on_progress(self, done: int, total: int, elapsed_seconds: int) -> None:
        if self._task is None:
            self._task = self.progress.add_task(self.description, total=total)
        self.progress.update(self._task, completed=done, total=total)
