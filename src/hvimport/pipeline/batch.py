"""Batch runner for importing many export bundles.

Host storage defaults and configured networks are read once per batch and
shared read-only by every bundle. Each bundle's pipeline runs in a worker
thread, bounded by a semaphore; bundles share no mutable state, so one
bundle's failure never affects another. Reports come back in input order.
"""

from __future__ import annotations

import asyncio
import signal
import threading
import time
import uuid
from pathlib import Path
from typing import Optional, Sequence

from hvimport.config import ImportOptions
from hvimport.errors import ErrorKind, ErrorRecord, HostServiceError, HvImportError
from hvimport.hyperv.service import HostService
from hvimport.pipeline.importer import ImportOrchestrator, ImportProgressCallback
from hvimport.pipeline.report import BatchResult, ImportReport
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)


class BatchImporter:
    """Imports a list of bundles, one report per bundle.

    Usage:
        importer = BatchImporter(service, config.options)
        importer.set_progress_callback(RichDashboard())
        result = asyncio.run(importer.run(paths))
    """

    def __init__(self, service: HostService, options: Optional[ImportOptions] = None):
        self.service = service
        self.options = options or ImportOptions()
        self._progress: ImportProgressCallback = ImportProgressCallback()
        self._cancel_event = threading.Event()

    def set_progress_callback(self, callback: ImportProgressCallback) -> None:
        self._progress = callback

    def cancel(self) -> None:
        """Stop polling running jobs and skip bundles not yet started.

        Host-side jobs already submitted keep running; the host offers no
        way to cancel them.
        """
        if not self._cancel_event.is_set():
            logger.warning("[yellow]Cancellation requested[/yellow]")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def run(self, paths: Sequence[str | Path]) -> BatchResult:
        """Import every bundle in ``paths``.

        Returns:
            BatchResult with one report per path, in the same order
        """
        result = BatchResult(
            batch_id=str(uuid.uuid4())[:8],
            simulated=self.options.simulate,
            started_at=time.time(),
        )
        logger.info(f"[bold]Starting batch {result.batch_id}[/bold]: {len(paths)} bundle(s)"
                    + (" [yellow](dry run)[/yellow]" if self.options.simulate else ""))

        record: Optional[ErrorRecord] = None
        try:
            defaults = await asyncio.to_thread(self.service.get_storage_defaults)
            if not defaults.vm_data_root:
                raise HostServiceError("Host reports no default VM data root")
            networks = await asyncio.to_thread(self.service.list_configured_networks)
        except HvImportError as e:
            record = e.to_record()
        except Exception as e:
            record = ErrorRecord(ErrorKind.HOST_ERROR, f"Reading host configuration failed: {type(e).__name__}: {e}")

        if record is not None:
            logger.error(f"[red]Cannot read host configuration: {record.message}[/red]")
            result.reports = [
                ImportReport.rejected(p, record, "Host configuration could not be read; bundle was not staged")
                for p in paths
            ]
            result.completed_at = time.time()
            return result

        logger.info(f"Host VM data root: {defaults.vm_data_root}; "
                    f"{len(networks)} virtual switch(es) configured")

        orchestrator = ImportOrchestrator(
            self.service,
            defaults,
            options=self.options,
            networks=networks,
            cancel_event=self._cancel_event,
            progress=self._progress,
        )

        loop = asyncio.get_running_loop()
        signal_installed = self._install_signal_handler(loop)
        semaphore = asyncio.Semaphore(self.options.max_workers)

        async def run_one(path: str | Path) -> ImportReport:
            async with semaphore:
                return await asyncio.to_thread(orchestrator.import_bundle, path)

        try:
            result.reports = list(await asyncio.gather(*(run_one(p) for p in paths)))
        finally:
            if signal_installed:
                loop.remove_signal_handler(signal.SIGINT)

        result.completed_at = time.time()
        logger.info(
            f"[bold]Batch {result.batch_id} {result.status.value}[/bold]: "
            f"{len(result.succeeded)} succeeded, {len(result.warnings)} warning(s), "
            f"{len(result.failed)} failed, {len(result.cancelled)} cancelled"
        )
        return result

    def _install_signal_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        """Route Ctrl-C to cancel() while the batch runs (not available on Windows)."""
        if threading.current_thread() is not threading.main_thread():
            return False
        try:
            loop.add_signal_handler(signal.SIGINT, self.cancel)
        except (NotImplementedError, RuntimeError):
            return False
        return True

