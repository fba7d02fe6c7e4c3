"""Per-bundle import orchestration.

Stages (executed in order, never reordered):
1. validate   — Bundle has its descriptor and configuration directory
2. stage      — Copy into <vm data root>/Virtual Machines/<name>
3. reconcile  — Parse settings on the host, apply host overrides
4. check      — Resource paths on disk, network names on the host
5. submit     — ImportVirtualSystemEx with the reconciled settings
6. poll       — Drive the asynchronous job to a terminal state

Every failure is captured into the bundle's ImportReport; nothing raised
inside one bundle escapes :meth:`ImportOrchestrator.import_bundle`.
"""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from hvimport.config import ImportOptions
from hvimport.errors import Cancelled, ErrorKind, ErrorRecord, HvImportError, NetworkMismatch
from hvimport.hyperv.service import HostService, HostStorageDefaults, JobStatus
from hvimport.pipeline.bundle import ExportBundle
from hvimport.pipeline.job import JobMonitor
from hvimport.pipeline.reconcile import check_resources, reconcile_settings, unmatched_networks
from hvimport.pipeline.report import ImportReport, Outcome
from hvimport.pipeline.staging import Stager
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)


class ImportProgressCallback:
    """Interface for progress reporting (implemented by the dashboard)."""

    def on_bundle_start(self, report: ImportReport) -> None:
        pass

    def on_stage_start(self, report: ImportReport, stage: str) -> None:
        pass

    def on_job_progress(self, report: ImportReport, status: JobStatus) -> None:
        pass

    def on_bundle_complete(self, report: ImportReport) -> None:
        pass


class ImportOrchestrator:
    """Imports one configuration-only export bundle at a time.

    Host defaults and configured networks are read once per batch by the
    caller and passed in; they are never modified here.
    """

    def __init__(
        self,
        service: HostService,
        defaults: HostStorageDefaults,
        options: Optional[ImportOptions] = None,
        networks: Optional[set[str]] = None,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ImportProgressCallback] = None,
        path_exists: Callable[[str], bool] = os.path.exists,
    ):
        self.service = service
        self.defaults = defaults
        self.options = options or ImportOptions()
        self.networks = networks
        self.cancel_event = cancel_event or threading.Event()
        self.progress = progress or ImportProgressCallback()
        self.path_exists = path_exists
        self.stager = Stager(defaults, segment=self.options.vm_data_segment, simulate=self.options.simulate)

    def import_bundle(self, path: str | Path) -> ImportReport:
        """Run the full pipeline for one bundle and return its report."""
        report = ImportReport(bundle_path=str(path), bundle_name=Path(path).name, started_at=time.time())
        self.progress.on_bundle_start(report)

        try:
            self._run(Path(path), report)
        except HvImportError as e:
            report.fail(e.to_record())
            if e.kind == ErrorKind.CANCELLED:
                logger.warning(f"'{report.bundle_name}' cancelled: {e.message}")
            else:
                logger.error(f"[red]✗ '{report.bundle_name}' failed ({e.kind.value}): {e.message}[/red]")
        except Exception as e:
            report.fail(ErrorRecord(ErrorKind.INTERNAL_ERROR, f"{type(e).__name__}: {e}"))
            logger.error(f"[red]✗ '{report.bundle_name}' failed unexpectedly: {e}[/red]", exc_info=True)

        report.finish()
        if report.outcome == Outcome.SUCCEEDED:
            logger.info(f"[green]✓ '{report.bundle_name}' imported in {report.duration_str}[/green]")
        elif report.outcome == Outcome.WARNING:
            logger.warning(
                f"[yellow]! '{report.bundle_name}' imported with {len(report.resources_missing)} "
                f"missing resource(s)[/yellow]"
            )
        self.progress.on_bundle_complete(report)
        return report

    def _stage(self, report: ImportReport, name: str) -> None:
        logger.info(f"[cyan]▶ {report.bundle_name}: {name}[/cyan]")
        self.progress.on_stage_start(report, name)

    def _run(self, path: Path, report: ImportReport) -> None:
        opts = self.options
        report.simulated = opts.simulate

        if self.cancel_event.is_set():
            raise Cancelled("Cancelled before staging; nothing was changed")

        self._stage(report, "validate")
        bundle = ExportBundle.from_path(path, opts.descriptor_name, opts.config_dir_name)
        report.bundle_name = bundle.name

        self._stage(report, "stage")
        staging = self.stager.stage(bundle)
        report.destination = str(staging.destination)

        # A dry run never creates the destination; parse from the source instead
        settings_path = staging.destination if staging.staged else bundle.source_path

        self._stage(report, "reconcile")
        settings = self.service.parse_import_settings(str(settings_path))
        reconcile_settings(settings, self.defaults)

        self._stage(report, "check")
        check = check_resources(settings.source_resource_paths, self.path_exists)
        report.resources_found = check.found
        report.resources_missing = check.missing
        for missing in check.missing:
            report.note(f"Resource '{missing}' is missing; reattach it manually after import")

        if self.networks is not None:
            unmatched = unmatched_networks(settings.target_network_connections, self.networks)
            report.unmatched_networks = unmatched
            if unmatched and opts.enforce_network_match:
                raise NetworkMismatch(f"No configured virtual switch named {', '.join(sorted(unmatched))}")
            for name in unmatched:
                logger.warning(f"'{bundle.name}' connects to network '{name}' which is not configured on the host")
                report.note(f"Network '{name}' is not configured on the host; adapter will need reconnecting")

        if opts.simulate:
            report.note("Dry run: bundle not copied and import not submitted")
            return

        # Last point at which a cancel leaves no host job behind
        if self.cancel_event.is_set():
            raise Cancelled(
                f"Cancelled before submission; staged copy at '{staging.destination}' left in place"
            )

        self._stage(report, "submit")
        submission = self.service.submit_import(str(staging.destination), settings.serialize())
        report.job_ref = submission.job_ref

        self._stage(report, "poll")
        monitor = JobMonitor(
            self.service,
            poll_interval=opts.poll_interval,
            cancel_event=self.cancel_event,
            on_progress=lambda status: self.progress.on_job_progress(report, status),
        )
        monitor.complete(submission)
