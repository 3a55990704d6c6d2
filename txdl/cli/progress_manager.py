"""
Wraps a Rich Progress display for native-engine transfers: one bar per file
with size, speed and time remaining.
"""

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class ProgressManager:
    """Owns the Rich Progress instance for the lifetime of one invocation."""

    def __init__(self, console: Console, enabled: bool = True):
        self.console = console
        self.enabled = enabled
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._started = False

    def add_task(
        self, description: str, total: int | None, completed: int = 0
    ) -> TaskID | None:
        if not self.enabled:
            return None
        if len(description) > 40:
            description = description[:37] + "..."
        return self.progress.add_task(description, total=total, completed=completed)

    def advance(self, task_id: TaskID | None, amount: int) -> None:
        if task_id is not None and self.enabled:
            self.progress.advance(task_id, amount)

    def reset_task(self, task_id: TaskID | None, completed: int = 0) -> None:
        if task_id is not None and self.enabled:
            self.progress.reset(task_id, completed=completed)

    def finish_task(self, task_id: TaskID | None, success: bool = True) -> None:
        if task_id is None or not self.enabled:
            return
        if success:
            task = next(t for t in self.progress.tasks if t.id == task_id)
            self.progress.update(task_id, completed=task.total or task.completed)
        self.progress.stop_task(task_id)

    async def __aenter__(self):
        if self.enabled:
            self.progress.start()
            self._started = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._started:
            self.progress.stop()
            self._started = False
