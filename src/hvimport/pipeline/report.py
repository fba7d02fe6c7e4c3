"""Per-bundle import reports and batch results."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from hvimport.errors import ErrorKind, ErrorRecord
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)


class Outcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    WARNING = "warning"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BatchStatus(str, Enum):
    COMPLETE = "complete"     # Every bundle succeeded (possibly with warnings)
    PARTIAL = "partial"       # Some bundles failed or were cancelled
    FAILED = "failed"         # Nothing imported


@dataclass
class ImportReport:
    """Outcome of importing one export bundle."""
    bundle_path: str
    bundle_name: str = ""
    destination: Optional[str] = None
    outcome: Outcome = Outcome.PENDING
    simulated: bool = False
    resources_found: list[str] = field(default_factory=list)
    resources_missing: list[str] = field(default_factory=list)
    unmatched_networks: list[str] = field(default_factory=list)
    job_ref: Optional[str] = None
    error: Optional[ErrorRecord] = None
    messages: list[str] = field(default_factory=list)
    started_at: float = 0
    completed_at: float = 0

    @property
    def duration_s(self) -> float:
        if self.completed_at and self.started_at:
            return self.completed_at - self.started_at
        if self.started_at:
            return time.time() - self.started_at
        return 0

    @property
    def duration_str(self) -> str:
        d = self.duration_s
        if d < 60:
            return f"{d:.0f}s"
        return f"{d / 60:.1f}m"

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def note(self, message: str) -> None:
        self.messages.append(message)

    def fail(self, error: ErrorRecord) -> None:
        self.error = error
        self.outcome = Outcome.CANCELLED if error.kind == ErrorKind.CANCELLED else Outcome.FAILED

    def finish(self) -> None:
        """Settle a report whose pipeline ran without error."""
        if self.outcome == Outcome.PENDING:
            self.outcome = Outcome.WARNING if self.resources_missing else Outcome.SUCCEEDED
        self.completed_at = time.time()

    @classmethod
    def rejected(cls, path: str | Path, error: ErrorRecord, reason: str) -> "ImportReport":
        """Report for a bundle that failed before its pipeline started."""
        report = cls(bundle_path=str(path), bundle_name=Path(path).name, started_at=time.time())
        report.fail(error)
        report.note(reason)
        report.finish()
        return report

    def to_dict(self) -> dict:
        return {
            "bundle_path": self.bundle_path,
            "bundle_name": self.bundle_name,
            "destination": self.destination,
            "outcome": self.outcome.value,
            "simulated": self.simulated,
            "resources_found": self.resources_found,
            "resources_missing": self.resources_missing,
            "unmatched_networks": self.unmatched_networks,
            "job_ref": self.job_ref,
            "error": self.error.to_dict() if self.error else None,
            "messages": self.messages,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImportReport":
        error = data.get("error")
        return cls(
            bundle_path=data["bundle_path"],
            bundle_name=data.get("bundle_name", ""),
            destination=data.get("destination"),
            outcome=Outcome(data.get("outcome", "pending")),
            simulated=data.get("simulated", False),
            resources_found=data.get("resources_found", []),
            resources_missing=data.get("resources_missing", []),
            unmatched_networks=data.get("unmatched_networks", []),
            job_ref=data.get("job_ref"),
            error=ErrorRecord.from_dict(error) if error else None,
            messages=data.get("messages", []),
            started_at=data.get("started_at", 0),
            completed_at=data.get("completed_at", 0),
        )


@dataclass
class BatchResult:
    """Reports for every bundle of one run, in input order."""
    batch_id: str
    reports: list[ImportReport] = field(default_factory=list)
    simulated: bool = False
    started_at: float = 0
    completed_at: float = 0

    def _with(self, outcome: Outcome) -> list[ImportReport]:
        return [r for r in self.reports if r.outcome == outcome]

    @property
    def succeeded(self) -> list[ImportReport]:
        return self._with(Outcome.SUCCEEDED)

    @property
    def warnings(self) -> list[ImportReport]:
        return self._with(Outcome.WARNING)

    @property
    def failed(self) -> list[ImportReport]:
        return self._with(Outcome.FAILED)

    @property
    def cancelled(self) -> list[ImportReport]:
        return self._with(Outcome.CANCELLED)

    @property
    def status(self) -> BatchStatus:
        ok = len(self.succeeded) + len(self.warnings)
        if ok == len(self.reports):
            return BatchStatus.COMPLETE
        if ok == 0:
            return BatchStatus.FAILED
        return BatchStatus.PARTIAL

    @property
    def duration_s(self) -> float:
        if self.completed_at and self.started_at:
            return self.completed_at - self.started_at
        return 0

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "simulated": self.simulated,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "reports": [r.to_dict() for r in self.reports],
        }

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load(cls, path: Path) -> "BatchResult":
        with open(path) as f:
            data = json.load(f)
        return cls(
            batch_id=data["batch_id"],
            reports=[ImportReport.from_dict(r) for r in data.get("reports", [])],
            simulated=data.get("simulated", False),
            started_at=data.get("started_at", 0),
            completed_at=data.get("completed_at", 0),
        )


def generate_report(result: BatchResult, output_path: Path | None = None) -> str:
    """Generate a Markdown import report.

    Args:
        result: Completed BatchResult
        output_path: Optional path to write the report file

    Returns:
        Report as Markdown string
    """
    started = datetime.fromtimestamp(result.started_at).strftime("%Y-%m-%d %H:%M") if result.started_at else "—"
    title = f"# Import Report — Batch `{result.batch_id}`"
    if result.simulated:
        title += " (dry run)"
    lines = [
        title,
        "",
        f"**Date:** {started}",
        f"**Duration:** {result.duration_s:.0f}s",
        f"**Status:** {result.status.value.upper()}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total bundles | {len(result.reports)} |",
        f"| Succeeded | {len(result.succeeded)} |",
        f"| Warnings | {len(result.warnings)} |",
        f"| Failed | {len(result.failed)} |",
        f"| Cancelled | {len(result.cancelled)} |",
        "",
    ]

    imported = result.succeeded + result.warnings
    if imported:
        lines += [
            "## Imported",
            "",
            "| Bundle | Destination | Outcome | Duration |",
            "|------|------|------|------|",
        ]
        for r in imported:
            lines.append(f"| {r.bundle_name} | `{r.destination}` | {r.outcome.value} | {r.duration_str} |")
        lines.append("")

    if result.warnings:
        lines += [
            "## Missing Resources",
            "",
            "Reattach these manually after import:",
            "",
        ]
        for r in result.warnings:
            for path in r.resources_missing:
                lines.append(f"- **{r.bundle_name}**: `{path}`")
        lines.append("")

    not_imported = result.failed + result.cancelled
    if not_imported:
        lines += [
            "## Not Imported",
            "",
            "| Bundle | Outcome | Error | Code | Message |",
            "|------|------|------|------|------|",
        ]
        for r in not_imported:
            kind = r.error.kind.value if r.error else "unknown"
            code = "" if not r.error or r.error.code is None else str(r.error.code)
            message = (r.error.message if r.error else "")[:100]
            lines.append(f"| {r.bundle_name or r.bundle_path} | {r.outcome.value} | {kind} | {code} | {message} |")
        lines.append("")

    report = "\n".join(lines)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report)
        logger.info(f"Report saved to {output_path}")

    return report
