"""Reconcile a bundle's recorded import settings with the current host."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Iterable

from hvimport.hyperv.service import HostStorageDefaults, ImportSettings
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)


def reconcile_settings(settings: ImportSettings, defaults: HostStorageDefaults) -> ImportSettings:
    """Apply the host-side overrides to freshly parsed settings.

    The bundle's own values are never trusted for identity, copy mode or
    snapshot storage. Resource and network lists keep what the bundle
    recorded, since they identify what to reconnect.
    """
    settings.reuse_existing_id = True
    settings.create_copy_of_data = False
    settings.snapshot_data_root = defaults.vhd_path
    settings.source_resource_paths = list(settings.current_resource_paths)
    settings.target_network_connections = list(settings.source_network_connections)
    return settings


@dataclass
class ResourceCheck:
    """Which resource paths exist on disk."""
    found: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing


def check_resources(
    paths: Iterable[str],
    exists: Callable[[str], bool] = os.path.exists,
) -> ResourceCheck:
    """Check every resource path; missing ones are recorded, never raised."""
    check = ResourceCheck()
    for path in paths:
        if exists(path):
            logger.debug(f"Resource present: {path}")
            check.found.append(path)
        else:
            logger.warning(f"Resource missing: {path} (reattach manually after import)")
            check.missing.append(path)
    return check


def unmatched_networks(connections: Iterable[str], configured: set[str]) -> list[str]:
    """Target network connections that name no configured switch.

    Empty entries are disconnected adapters and are skipped.
    """
    return [c for c in connections if c and c not in configured]
