"""Drive a host-side import job to a terminal state."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from hvimport.errors import Cancelled, JobFailure, SubmissionError
from hvimport.hyperv.service import RC_COMPLETED, RC_JOB_STARTED, HostService, JobState, JobStatus, SubmitResult
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)

ProgressFn = Callable[[JobStatus], None]


class JobMonitor:
    """Interprets a submission result and polls its job until it ends.

    The host offers no completion notification, so the monitor re-reads
    the job status every ``poll_interval`` seconds while the job is new,
    starting or running. Percent-complete is reported as seen; it is not
    assumed to be monotonic.
    """

    def __init__(
        self,
        service: HostService,
        poll_interval: float = 1.0,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressFn] = None,
    ):
        self.service = service
        self.poll_interval = poll_interval
        self.cancel_event = cancel_event or threading.Event()
        self.on_progress = on_progress

    def complete(self, submission: SubmitResult) -> Optional[JobStatus]:
        """Wait for a submission to finish.

        Returns:
            The terminal JobStatus, or None when the host completed the
            import synchronously

        Raises:
            SubmissionError: Return code was neither 0 nor 4096
            JobFailure: Job ended in any state other than completed
            Cancelled: The cancel event was set while polling
        """
        if submission.return_code == RC_COMPLETED:
            logger.info("Import completed synchronously")
            return None

        if submission.return_code != RC_JOB_STARTED:
            raise SubmissionError(
                f"Host rejected import request (return code {submission.return_code})",
                code=submission.return_code,
            )

        if not submission.job_ref:
            raise SubmissionError("Host started an import job but returned no job reference", code=RC_JOB_STARTED)

        return self.wait(submission.job_ref)

    def wait(self, job_ref: str) -> JobStatus:
        """Poll ``job_ref`` until it leaves the active states."""
        logger.info(f"Import job started: {job_ref}")
        polls = 0
        while True:
            status = self.service.get_job_status(job_ref)
            polls += 1
            if not status.active:
                break

            logger.debug(f"Job {JobState.describe(status.state)}: {status.caption} ({status.percent_complete}%)")
            if self.on_progress:
                self.on_progress(status)

            # Event.wait doubles as the poll sleep so a cancel is noticed promptly
            if self.cancel_event.wait(self.poll_interval):
                logger.warning(f"Cancelled while polling job {job_ref}; the host job is left running")
                raise Cancelled(
                    f"Cancelled after {polls} polls at {status.percent_complete}% "
                    f"({JobState.describe(status.state)}); host job {job_ref} was not stopped"
                )

        if self.on_progress:
            self.on_progress(status)

        if status.succeeded:
            logger.info(f"Import job completed after {polls} polls")
            return status

        description = status.error_description or "no description reported"
        raise JobFailure(
            f"Import job ended {JobState.describe(status.state)}: {description}",
            code=status.error_code,
        )
