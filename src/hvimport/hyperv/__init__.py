"""Hyper-V host management service binding."""

from hvimport.hyperv.service import (
    HostService,
    HostStorageDefaults,
    HyperVHostService,
    ImportSettings,
    JobState,
    JobStatus,
    SubmitResult,
)

__all__ = [
    "HostService",
    "HostStorageDefaults",
    "HyperVHostService",
    "ImportSettings",
    "JobState",
    "JobStatus",
    "SubmitResult",
]
