"""Rich progress bar for batch scoring from the command line."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing_extensions import override

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .protocols import ProgressReporter


def _scoring_progress() -> Progress:
    return Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        transient=True,
    )


@dataclass
class CliProgressReporter(ProgressReporter):
    """Shows one rich task per batch; a new ``start`` replaces the previous task."""

    progress: Progress = field(default_factory=_scoring_progress)
    task_id: TaskID | None = None
    running: bool = False

    @override
    def start(self, label: str, total: int | None) -> None:
        if not self.running:
            self.progress.start()
            self.running = True
        if self.task_id is not None:
            self.progress.remove_task(self.task_id)
        self.task_id = self.progress.add_task(label, total=total)

    @override
    def advance(self, count: int) -> None:
        if self.task_id is not None:
            self.progress.advance(self.task_id, count)

    @override
    def finish(self) -> None:
        if self.task_id is not None:
            self.progress.remove_task(self.task_id)
            self.task_id = None
        if self.running:
            self.progress.stop()
            self.running = False
