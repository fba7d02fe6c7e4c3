"""Error taxonomy for bundle imports.

Every failure carries an :class:`ErrorKind` plus a free-text diagnostic so
callers can match on the kind instead of parsing messages. Errors raised
inside one bundle's processing are converted to an :class:`ErrorRecord`
and stored on that bundle's report; they never abort a batch.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    DESTINATION_CONFLICT = "destination_conflict"
    STAGING_ERROR = "staging_error"
    MISSING_RESOURCE = "missing_resource"
    SUBMISSION_ERROR = "submission_error"
    JOB_FAILURE = "job_failure"
    CANCELLED = "cancelled"
    HOST_ERROR = "host_error"
    NETWORK_MISMATCH = "network_mismatch"
    INTERNAL_ERROR = "internal_error"


@dataclass
class ErrorRecord:
    """Serializable error attached to an import report."""
    kind: ErrorKind
    message: str
    code: Optional[int] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "ErrorRecord":
        return cls(
            kind=ErrorKind(data["kind"]),
            message=data.get("message", ""),
            code=data.get("code"),
        )


class HvImportError(Exception):
    """Base class for all hvimport failures."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_record(self) -> ErrorRecord:
        return ErrorRecord(kind=self.kind, message=self.message, code=self.code)


class ValidationError(HvImportError):
    """Bundle is missing its settings descriptor or configuration directory."""
    kind = ErrorKind.VALIDATION_ERROR


class DestinationConflict(HvImportError):
    """Staging destination already exists."""
    kind = ErrorKind.DESTINATION_CONFLICT


class StagingError(HvImportError):
    """Copying the bundle to its destination failed."""
    kind = ErrorKind.STAGING_ERROR


class SubmissionError(HvImportError):
    """Host rejected the import request outright."""
    kind = ErrorKind.SUBMISSION_ERROR


class JobFailure(HvImportError):
    """Asynchronous import job ended in a non-success terminal state."""
    kind = ErrorKind.JOB_FAILURE


class Cancelled(HvImportError):
    """Operator aborted the import while it was in progress."""
    kind = ErrorKind.CANCELLED


class HostServiceError(HvImportError):
    """A call into the host management service failed."""
    kind = ErrorKind.HOST_ERROR


class NetworkMismatch(HvImportError):
    """A target network connection names no configured virtual switch."""
    kind = ErrorKind.NETWORK_MISMATCH
