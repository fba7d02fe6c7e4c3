"""Export bundle discovery and eligibility checks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from hvimport.errors import ValidationError

DEFAULT_DESCRIPTOR = "config.xml"
DEFAULT_CONFIG_DIR = "Virtual Machines"


@dataclass(frozen=True)
class ExportBundle:
    """A configuration-only export directory.

    The bundle is owned by the caller's filesystem and is only ever read.
    """
    source_path: Path
    name: str
    has_descriptor: bool
    has_config_dir: bool

    @property
    def eligible(self) -> bool:
        return self.has_descriptor and self.has_config_dir

    @classmethod
    def inspect(
        cls,
        path: str | Path,
        descriptor_name: str = DEFAULT_DESCRIPTOR,
        config_dir_name: str = DEFAULT_CONFIG_DIR,
    ) -> "ExportBundle":
        """Describe a bundle without judging it."""
        source = Path(path).expanduser().absolute()
        return cls(
            source_path=source,
            name=source.name,
            has_descriptor=(source / descriptor_name).is_file(),
            has_config_dir=(source / config_dir_name).is_dir(),
        )

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        descriptor_name: str = DEFAULT_DESCRIPTOR,
        config_dir_name: str = DEFAULT_CONFIG_DIR,
    ) -> "ExportBundle":
        """Load a bundle, raising ValidationError unless it is eligible."""
        bundle = cls.inspect(path, descriptor_name, config_dir_name)
        if not bundle.source_path.is_dir():
            raise ValidationError(f"Export bundle '{path}' is not a directory")
        missing = []
        if not bundle.has_descriptor:
            missing.append(f"settings descriptor '{descriptor_name}'")
        if not bundle.has_config_dir:
            missing.append(f"configuration directory '{config_dir_name}'")
        if missing:
            raise ValidationError(f"Export bundle '{bundle.source_path}' is missing {' and '.join(missing)}")
        return bundle
