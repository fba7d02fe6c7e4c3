"""Stage export bundles into the host's VM data directory."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from hvimport.errors import DestinationConflict, StagingError
from hvimport.hyperv.service import HostStorageDefaults
from hvimport.pipeline.bundle import ExportBundle
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)

VM_DATA_SEGMENT = "Virtual Machines"


@dataclass
class StagingResult:
    """Where a bundle was (or would be) staged."""
    destination: Path
    staged: bool
    simulated: bool = False


def destination_for(
    bundle: ExportBundle,
    defaults: HostStorageDefaults,
    segment: str = VM_DATA_SEGMENT,
) -> Path:
    """Compute ``<vm_data_root>/<segment>/<bundle name>``."""
    return Path(defaults.vm_data_root) / segment / bundle.name


class Stager:
    """Copies a bundle to its canonical destination.

    The destination is claimed with an exclusive ``mkdir`` before anything is
    copied, so two bundles resolving to the same path cannot both stage and
    an existing VM's data is never merged into or overwritten.
    """

    def __init__(self, defaults: HostStorageDefaults, segment: str = VM_DATA_SEGMENT, simulate: bool = False):
        self.defaults = defaults
        self.segment = segment
        self.simulate = simulate

    def stage(self, bundle: ExportBundle) -> StagingResult:
        """Stage one bundle.

        Raises:
            DestinationConflict: If the destination already exists
            StagingError: If the copy itself fails
        """
        destination = destination_for(bundle, self.defaults, self.segment)

        if destination.exists():
            raise DestinationConflict(f"Destination '{destination}' already exists; refusing to overwrite")

        if self.simulate:
            logger.info(f"[yellow]DRY RUN[/yellow]: would copy {bundle.source_path} → {destination}")
            return StagingResult(destination=destination, staged=False, simulated=True)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.mkdir()
        except FileExistsError:
            raise DestinationConflict(f"Destination '{destination}' was created concurrently; refusing to overwrite")
        except OSError as e:
            raise StagingError(f"Cannot create '{destination}': {e}")

        logger.info(f"Copying {bundle.source_path} → {destination}")
        try:
            shutil.copytree(bundle.source_path, destination, dirs_exist_ok=True)
        except OSError as e:
            raise StagingError(f"Copy to '{destination}' failed: {e}; remove the partial copy before retrying")
        return StagingResult(destination=destination, staged=True)
