"""Rich live progress and result tables for batch imports."""

from __future__ import annotations

import threading
from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from hvimport.hyperv.service import JobStatus
from hvimport.pipeline.importer import ImportProgressCallback
from hvimport.pipeline.report import BatchResult, ImportReport

OUTCOME_STYLES = {
    "pending":   ("⏳", "dim"),
    "succeeded": ("✅", "bold green"),
    "warning":   ("⚠️ ", "bold yellow"),
    "failed":    ("❌", "bold red"),
    "cancelled": ("⏭️ ", "dim"),
}

STAGE_LABELS = {
    "validate": "Validate",
    "stage": "Copy bundle",
    "reconcile": "Reconcile",
    "check": "Check resources",
    "submit": "Submit",
    "poll": "Importing",
}


class RichDashboard(ImportProgressCallback):
    """One progress bar per bundle, driven by job percent-complete.

    Callbacks arrive from worker threads; rich's Progress is thread-safe,
    the task map is guarded by a lock.
    """

    def __init__(self, console: Optional[Console] = None):
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[caption]}"),
            TimeElapsedColumn(),
            console=console,
        )
        self._tasks: dict[int, TaskID] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> "RichDashboard":
        self.progress.start()
        return self

    def __exit__(self, *exc) -> None:
        self.progress.stop()

    def _task(self, report: ImportReport) -> Optional[TaskID]:
        with self._lock:
            return self._tasks.get(id(report))

    def on_bundle_start(self, report: ImportReport) -> None:
        task = self.progress.add_task(report.bundle_name, total=100, caption="queued")
        with self._lock:
            self._tasks[id(report)] = task

    def on_stage_start(self, report: ImportReport, stage: str) -> None:
        task = self._task(report)
        if task is not None:
            self.progress.update(task, caption=STAGE_LABELS.get(stage, stage))

    def on_job_progress(self, report: ImportReport, status: JobStatus) -> None:
        task = self._task(report)
        if task is not None:
            self.progress.update(task, completed=status.percent_complete, caption=status.caption or "Importing")

    def on_bundle_complete(self, report: ImportReport) -> None:
        task = self._task(report)
        if task is None:
            return
        icon, style = OUTCOME_STYLES.get(report.outcome.value, ("", ""))
        caption = f"[{style}]{icon} {report.outcome.value}[/{style}]"
        if report.outcome.value in ("succeeded", "warning"):
            self.progress.update(task, completed=100, caption=caption)
        else:
            self.progress.update(task, caption=caption)


def results_table(result: BatchResult) -> Table:
    """Summarize a batch as a rich table."""
    title = f"Import batch {result.batch_id}"
    if result.simulated:
        title += " (dry run)"
    table = Table(title=title)
    table.add_column("Bundle", style="cyan", no_wrap=True)
    table.add_column("Destination")
    table.add_column("Outcome")
    table.add_column("Resources", justify="right")
    table.add_column("Details")

    for r in result.reports:
        icon, style = OUTCOME_STYLES.get(r.outcome.value, ("", ""))
        total = len(r.resources_found) + len(r.resources_missing)
        resources = f"{len(r.resources_found)}/{total}" if total else "—"
        if r.error:
            details = f"{r.error.kind.value}: {r.error.message}"
        elif r.resources_missing:
            details = "missing: " + ", ".join(r.resources_missing)
        else:
            details = "; ".join(r.messages)
        table.add_row(
            r.bundle_name or r.bundle_path,
            r.destination or "—",
            f"[{style}]{icon} {r.outcome.value}[/{style}]",
            resources,
            details,
        )
    return table
