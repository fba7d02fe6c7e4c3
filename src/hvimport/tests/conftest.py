"""Shared fixtures: a scripted host service and on-disk export bundles."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import pytest

from hvimport.hyperv.service import (
    HostService,
    HostStorageDefaults,
    ImportSettings,
    JobStatus,
    SubmitResult,
)


def bundle_settings(
    resources: Optional[list[str]] = None,
    networks: Optional[list[str]] = None,
    name: str = "VM1",
) -> dict:
    """WMI-shaped settings as the host would parse them from a descriptor."""
    return {
        "Name": name,
        "GenerateNewID": True,
        "CreateCopy": True,
        "SourceSnapshotDataRoot": "C:\\OldHost\\Snapshots",
        "CurrentResourcePaths": resources if resources is not None else ["/disks/vm1.vhd"],
        "SourceResourcePaths": ["C:\\OldHost\\vm1.vhd"],
        "SourceNetworkConnections": networks if networks is not None else ["External"],
        "TargetNetworkConnections": ["Stale Switch"],
    }


class FakeHostService(HostService):
    """HostService that records every call and replays scripted answers."""

    def __init__(
        self,
        defaults: Optional[HostStorageDefaults] = None,
        networks: Optional[set[str]] = None,
        settings: Optional[dict] = None,
        submit: Optional[SubmitResult] = None,
        job_statuses: Optional[list[JobStatus]] = None,
    ):
        self.defaults = defaults or HostStorageDefaults(vm_data_root="/data", vhd_path="/data/vhd")
        self.networks = networks if networks is not None else {"External"}
        self.settings = settings if settings is not None else bundle_settings()
        self.submit_result = submit or SubmitResult(return_code=4096, job_ref="job-1")
        self.job_statuses = list(job_statuses or [JobStatus(state=7, percent_complete=100, caption="Done")])
        self.calls: list[tuple[str, tuple]] = []
        self.submitted: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _record(self, name: str, *args) -> None:
        with self._lock:
            self.calls.append((name, args))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def get_storage_defaults(self) -> HostStorageDefaults:
        self._record("get_storage_defaults")
        return self.defaults

    def list_configured_networks(self) -> set[str]:
        self._record("list_configured_networks")
        return set(self.networks)

    def parse_import_settings(self, path: str) -> ImportSettings:
        self._record("parse_import_settings", path)
        return ImportSettings.from_wmi(self.settings)

    def submit_import(self, path: str, serialized_settings: str) -> SubmitResult:
        self._record("submit_import", path, serialized_settings)
        self.submitted.append((path, serialized_settings))
        return self.submit_result

    def get_job_status(self, job_ref: str) -> JobStatus:
        self._record("get_job_status", job_ref)
        with self._lock:
            if len(self.job_statuses) > 1:
                return self.job_statuses.pop(0)
            return self.job_statuses[0]


def job_sequence(states: list[int], percents: list[int]) -> list[JobStatus]:
    return [
        JobStatus(state=s, percent_complete=p, caption="Importing virtual machine")
        for s, p in zip(states, percents)
    ]


def make_bundle(root: Path, name: str) -> Path:
    """Create a config-only export bundle directory."""
    bundle = root / name
    (bundle / "Virtual Machines").mkdir(parents=True)
    (bundle / "config.xml").write_text("<configuration/>")
    (bundle / "Virtual Machines" / "5A1B2C3D.exp").write_text("<exported/>")
    return bundle


@pytest.fixture
def export_root(tmp_path: Path) -> Path:
    root = tmp_path / "export"
    root.mkdir()
    return root


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def host(data_root: Path) -> FakeHostService:
    return FakeHostService(defaults=HostStorageDefaults(vm_data_root=str(data_root), vhd_path=str(data_root / "vhd")))
