"""Host virtualization management service operations.

:class:`HostService` is the contract the import pipeline depends on.
:class:`HyperVHostService` implements it with PowerShell/WMI calls against
``Msvm_VirtualSystemManagementService`` over WinRM.

Import jobs are exposed as an opaque reference string. The status is
fetched fresh from the host on every :meth:`HostService.get_job_status`
call; nothing caches a live job object.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional

from hvimport.hyperv.client import HyperVClient, ps_quote
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)

RC_COMPLETED = 0
RC_JOB_STARTED = 4096


class JobState(IntEnum):
    """CIM_ConcreteJob.JobState values reported by the host."""
    NEW = 2
    STARTING = 3
    RUNNING = 4
    SUSPENDED = 5
    SHUTTING_DOWN = 6
    COMPLETED = 7
    TERMINATED = 8
    KILLED = 9
    EXCEPTION = 10
    SERVICE = 11

    @classmethod
    def describe(cls, state: int) -> str:
        try:
            return cls(state).name.lower()
        except ValueError:
            return f"unknown({state})"


# Only these states keep a job alive; every other value is terminal.
ACTIVE_JOB_STATES = frozenset({JobState.NEW, JobState.STARTING, JobState.RUNNING})


@dataclass(frozen=True)
class HostStorageDefaults:
    """Host-wide storage defaults, read once per batch."""
    vm_data_root: str
    vhd_path: str


@dataclass
class ImportSettings:
    """Import settings parsed by the host from a bundle's descriptor.

    Field names map to Msvm_VirtualSystemImportSettingData properties
    through :data:`WMI_PROPERTIES`.
    """
    name: str = ""
    reuse_existing_id: bool = False
    create_copy_of_data: bool = True
    snapshot_data_root: str = ""
    current_resource_paths: list[str] = field(default_factory=list)
    source_resource_paths: list[str] = field(default_factory=list)
    source_network_connections: list[str] = field(default_factory=list)
    target_network_connections: list[str] = field(default_factory=list)

    def to_wmi(self) -> dict[str, Any]:
        """Properties submitted back to the host, keyed by WMI name."""
        return {
            "GenerateNewID": not self.reuse_existing_id,
            "CreateCopy": self.create_copy_of_data,
            "SourceSnapshotDataRoot": self.snapshot_data_root,
            "SourceResourcePaths": list(self.source_resource_paths),
            "TargetNetworkConnections": list(self.target_network_connections),
        }

    def serialize(self) -> str:
        return json.dumps(self.to_wmi(), sort_keys=True)

    @classmethod
    def from_wmi(cls, data: dict[str, Any]) -> "ImportSettings":
        return cls(
            name=data.get("Name") or "",
            reuse_existing_id=not bool(data.get("GenerateNewID", True)),
            create_copy_of_data=bool(data.get("CreateCopy", False)),
            snapshot_data_root=data.get("SourceSnapshotDataRoot") or "",
            current_resource_paths=_as_list(data.get("CurrentResourcePaths")),
            source_resource_paths=_as_list(data.get("SourceResourcePaths")),
            source_network_connections=_as_list(data.get("SourceNetworkConnections")),
            target_network_connections=_as_list(data.get("TargetNetworkConnections")),
        )


@dataclass(frozen=True)
class SubmitResult:
    """Immediate outcome of an import submission."""
    return_code: int
    job_ref: Optional[str] = None


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of an import job's state at one poll."""
    state: int
    percent_complete: int = 0
    caption: str = ""
    error_code: Optional[int] = None
    error_description: str = ""

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_JOB_STATES

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.COMPLETED


class HostService(ABC):
    """Operations the import pipeline needs from the host."""

    @abstractmethod
    def get_storage_defaults(self) -> HostStorageDefaults:
        ...

    @abstractmethod
    def list_configured_networks(self) -> set[str]:
        ...

    @abstractmethod
    def parse_import_settings(self, path: str) -> ImportSettings:
        ...

    @abstractmethod
    def submit_import(self, path: str, serialized_settings: str) -> SubmitResult:
        ...

    @abstractmethod
    def get_job_status(self, job_ref: str) -> JobStatus:
        ...


# ─── PowerShell binding ──────────────────────────────────────────

_PREAMBLE = "$ErrorActionPreference = 'Stop'\n"

_STORAGE_DEFAULTS_PS = """
$s = Get-WmiObject -Namespace {ns} -Class Msvm_VirtualSystemManagementServiceSettingData
@{{
    DefaultExternalDataRoot = [string]$s.DefaultExternalDataRoot
    DefaultVirtualHardDiskPath = [string]$s.DefaultVirtualHardDiskPath
}} | ConvertTo-Json
"""

_NETWORKS_PS = """
$names = @(Get-WmiObject -Namespace {ns} -Class Msvm_VirtualSwitch | ForEach-Object {{ [string]$_.ElementName }})
ConvertTo-Json -InputObject $names
"""

_READ_SETTINGS_PS = """
$svc = Get-WmiObject -Namespace {ns} -Class Msvm_VirtualSystemManagementService
$r = $svc.GetVirtualSystemImportSettingData({path})
if ($r.ReturnValue -ne 0) {{ throw "GetVirtualSystemImportSettingData returned $($r.ReturnValue)" }}
$d = $r.ImportSettingData
"""

_PARSE_SETTINGS_PS = _READ_SETTINGS_PS + """
@{{
    Name = [string]$d.Name
    GenerateNewID = [bool]$d.GenerateNewID
    CreateCopy = [bool]$d.CreateCopy
    SourceSnapshotDataRoot = [string]$d.SourceSnapshotDataRoot
    CurrentResourcePaths = @($d.CurrentResourcePaths)
    SourceResourcePaths = @($d.SourceResourcePaths)
    SourceNetworkConnections = @($d.SourceNetworkConnections)
    TargetNetworkConnections = @($d.TargetNetworkConnections)
}} | ConvertTo-Json -Depth 3
"""

_SUBMIT_PS = """
$settings = @'
{settings}
'@ | ConvertFrom-Json
""" + _READ_SETTINGS_PS + """
foreach ($p in $settings.PSObject.Properties) {{ $d.($p.Name) = $p.Value }}
$result = $svc.ImportVirtualSystemEx({path}, $d.GetText(1))
@{{ ReturnValue = [int]$result.ReturnValue; Job = [string]$result.Job }} | ConvertTo-Json
"""

_JOB_STATUS_PS = """
$job = [wmi]{ref}
@{{
    JobState = [int]$job.JobState
    PercentComplete = [int]$job.PercentComplete
    Caption = [string]$job.Caption
    ErrorCode = [int]$job.ErrorCode
    ErrorDescription = [string]$job.ErrorDescription
}} | ConvertTo-Json
"""


class HyperVHostService(HostService):
    """HostService backed by the Hyper-V WMI provider, reached over WinRM."""

    def __init__(self, client: HyperVClient, namespace: str = "root\\virtualization"):
        self.client = client
        self.namespace = namespace

    def _run(self, template: str, action: str, **params: str) -> Any:
        script = _PREAMBLE + template.format(ns=ps_quote(self.namespace), **params)
        return self.client.run_json(script, action)

    def get_storage_defaults(self) -> HostStorageDefaults:
        data = self._run(_STORAGE_DEFAULTS_PS, "Reading host storage defaults") or {}
        defaults = HostStorageDefaults(
            vm_data_root=data.get("DefaultExternalDataRoot") or "",
            vhd_path=data.get("DefaultVirtualHardDiskPath") or "",
        )
        logger.debug(f"Host storage defaults: data root={defaults.vm_data_root}, vhd={defaults.vhd_path}")
        return defaults

    def list_configured_networks(self) -> set[str]:
        return set(_as_list(self._run(_NETWORKS_PS, "Listing virtual switches")))

    def parse_import_settings(self, path: str) -> ImportSettings:
        data = self._run(_PARSE_SETTINGS_PS, f"Parsing import settings at {path}", path=ps_quote(path))
        return ImportSettings.from_wmi(data or {})

    def submit_import(self, path: str, serialized_settings: str) -> SubmitResult:
        data = self._run(
            _SUBMIT_PS,
            f"Submitting import of {path}",
            path=ps_quote(path),
            settings=serialized_settings,
        ) or {}
        return SubmitResult(
            return_code=int(data.get("ReturnValue", -1)),
            job_ref=data.get("Job") or None,
        )

    def get_job_status(self, job_ref: str) -> JobStatus:
        data = self._run(_JOB_STATUS_PS, f"Reading job {job_ref}", ref=ps_quote(job_ref)) or {}
        return JobStatus(
            state=int(data.get("JobState", 0)),
            percent_complete=int(data.get("PercentComplete") or 0),
            caption=data.get("Caption") or "",
            error_code=data.get("ErrorCode"),
            error_description=data.get("ErrorDescription") or "",
        )


def _as_list(value: Any) -> list[str]:
    """Normalize ConvertTo-Json output (null, scalar or array) to a list of strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return [str(value)]
