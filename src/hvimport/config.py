"""Configuration models for hvimport using Pydantic v2."""

from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

LOCAL_HOST_NAMES = {"localhost", "127.0.0.1", "::1", "."}


class HyperVConfig(BaseModel):
    """WinRM connection to the Hyper-V host that performs the import."""

    host: str = Field("localhost", description="Hyper-V host name or IP")
    username: str = Field("", description="WinRM username (DOMAIN\\user or user@domain)")
    password: Optional[SecretStr] = Field(None, description="WinRM password (prefer password_env)")
    password_env: Optional[str] = Field("HYPERV_PASSWORD", description="Environment variable containing the password")
    transport: str = Field("ntlm", pattern="^(ntlm|kerberos|basic|credssp)$", description="WinRM transport")
    port: int = Field(5985, description="WinRM port (5985 HTTP, 5986 HTTPS)")
    ssl: bool = Field(False, description="Use HTTPS for WinRM")
    operation_timeout: int = Field(60, ge=1, description="WinRM operation timeout in seconds")
    read_timeout: int = Field(70, ge=1, description="HTTP read timeout in seconds")

    @model_validator(mode="after")
    def resolve_password(self) -> "HyperVConfig":
        if self.password is None and self.password_env:
            env_val = os.environ.get(self.password_env)
            if env_val:
                self.password = SecretStr(env_val)
        if self.transport != "kerberos" and self.password is None:
            raise ValueError(
                f"A password is required for '{self.transport}' transport "
                f"(set 'password' or the {self.password_env or 'password_env'} env var)"
            )
        if self.read_timeout <= self.operation_timeout:
            raise ValueError("read_timeout must be greater than operation_timeout")
        return self

    @property
    def is_local(self) -> bool:
        """True when the host is this machine, so its paths are valid here."""
        name = self.host.strip().lower()
        if name in LOCAL_HOST_NAMES:
            return True
        local = socket.gethostname().lower()
        return name == local or name.split(".")[0] == local.split(".")[0]


class ImportOptions(BaseModel):
    """Import behavior settings."""

    poll_interval: float = Field(1.0, gt=0, description="Seconds between job status polls")
    max_workers: int = Field(1, ge=1, le=16, description="Bundles imported concurrently")
    enforce_network_match: bool = Field(
        False, description="Fail bundles whose target networks name no configured switch"
    )
    descriptor_name: str = Field("config.xml", description="Settings descriptor file inside a bundle")
    config_dir_name: str = Field("Virtual Machines", description="Configuration subdirectory inside a bundle")
    vm_data_segment: str = Field("Virtual Machines", description="Folder under the host data root that receives bundles")
    simulate: bool = Field(False, description="Dry run: no copy, no submission")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ImportOptions":
        """Load only the ``import`` section of a configuration file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**(data.get("import") or {}))


class AppConfig(BaseModel):
    """Root application configuration."""

    model_config = ConfigDict(populate_by_name=True)

    hyperv: HyperVConfig
    options: ImportOptions = Field(default_factory=ImportOptions, alias="import")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_env_and_args(cls, **overrides) -> "AppConfig":
        """Build config from environment variables with CLI overrides."""
        base = {
            "hyperv": {
                "host": os.environ.get("HYPERV_HOST", "localhost"),
                "username": os.environ.get("HYPERV_USERNAME", ""),
                "password_env": "HYPERV_PASSWORD",
                "transport": os.environ.get("HYPERV_TRANSPORT", "ntlm"),
                "port": int(os.environ.get("HYPERV_PORT", "5985")),
                "ssl": os.environ.get("HYPERV_SSL", "false").lower() == "true",
            },
            "import": {},
        }
        # Deep merge overrides
        for key, value in overrides.items():
            if isinstance(value, dict) and key in base:
                base[key].update(value)
            else:
                base[key] = value
        return cls(**base)

    def with_options(self, **changes) -> "AppConfig":
        """Return a copy with import options replaced (None values are ignored)."""
        updates = {k: v for k, v in changes.items() if v is not None}
        if not updates:
            return self
        return self.model_copy(update={"options": self.options.model_copy(update=updates)})
