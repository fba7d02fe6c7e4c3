"""WinRM connection to a Hyper-V host."""

from __future__ import annotations

import json
import re
import time
from typing import Any, Optional

import winrm

from hvimport.config import HyperVConfig
from hvimport.errors import HostServiceError
from hvimport.utils.logging import get_logger

logger = get_logger(__name__)


class PowerShellResult:
    """Result of a remote PowerShell execution."""

    def __init__(self, status_code: int, stdout: str = "", stderr: str = ""):
        self.status_code = status_code
        self.stdout = stdout
        self.stderr = stderr

    @property
    def success(self) -> bool:
        return self.status_code == 0


# PowerShell accepts the typographic single quotes as delimiters too
_PS_SINGLE_QUOTES = re.compile("(['\u2018\u2019\u201a\u201b])")


def ps_quote(value: str) -> str:
    """Render a Python string as a single-quoted PowerShell literal."""
    return "'" + _PS_SINGLE_QUOTES.sub(r"\1\1", str(value)) + "'"


def require_local_host(config: HyperVConfig) -> None:
    """Refuse a host whose filesystem is not this machine's.

    Staging copies into the host's VM data root and resource checks read
    the host's disk paths, both through the local filesystem.

    Raises:
        HostServiceError: If the configured host is remote
    """
    if not config.is_local:
        raise HostServiceError(
            f"Host '{config.host}' is not this machine; bundles are staged and checked on the "
            f"local filesystem, so run the import on the Hyper-V host itself"
        )


class HyperVClient:
    """Runs PowerShell on a Hyper-V host over WinRM.

    Uses pywinrm. Supports:
    - NTLM, Kerberos, Basic and CredSSP transports
    - Connection test with retry and backoff
    - JSON round-trip for scripts ending in ``ConvertTo-Json``
    """

    def __init__(self, config: HyperVConfig, session: Any = None):
        self.config = config
        self._session = session

    @property
    def session(self) -> Any:
        if self._session is None:
            self._session = self._open_session()
        return self._session

    def _open_session(self) -> winrm.Session:
        scheme = "https" if self.config.ssl else "http"
        endpoint = f"{scheme}://{self.config.host}:{self.config.port}/wsman"
        password = self.config.password.get_secret_value() if self.config.password else ""

        logger.debug(f"Opening WinRM session to {endpoint} ({self.config.transport})")
        return winrm.Session(
            endpoint,
            auth=(self.config.username, password),
            transport=self.config.transport,
            server_cert_validation="ignore",
            operation_timeout_sec=self.config.operation_timeout,
            read_timeout_sec=self.config.read_timeout,
        )

    def connect(self, max_retries: int = 3) -> None:
        """Verify the host is reachable, retrying with exponential backoff.

        Raises:
            HostServiceError: If all connection attempts fail
        """
        last_error: Optional[str] = None
        for attempt in range(1, max_retries + 1):
            logger.info(f"Connecting to Hyper-V host {self.config.host} (attempt {attempt}/{max_retries})")
            result = self.run_powershell("$env:COMPUTERNAME")
            if result.success:
                logger.info(f"Connected to {result.stdout.strip() or self.config.host}")
                return
            last_error = result.stderr.strip() or f"exit code {result.status_code}"
            logger.warning(f"Connection attempt {attempt} failed: {last_error}")
            if attempt < max_retries:
                time.sleep(2 ** attempt)

        raise HostServiceError(
            f"Failed to connect to {self.config.host} after {max_retries} attempts: {last_error}"
        )

    def run_powershell(self, script: str) -> PowerShellResult:
        """Execute a PowerShell script on the host.

        Transport errors are reported as a failed result rather than raised.
        """
        try:
            result = self.session.run_ps(script)
        except Exception as e:
            return PowerShellResult(-1, "", str(e))
        return PowerShellResult(
            result.status_code,
            result.std_out.decode("utf-8", errors="replace"),
            result.std_err.decode("utf-8", errors="replace"),
        )

    def run_json(self, script: str, action: str) -> Any:
        """Execute a script whose output is JSON and return the decoded value.

        Args:
            script: PowerShell script ending in ``ConvertTo-Json``
            action: Short description used in error messages

        Raises:
            HostServiceError: On a non-zero exit status or unparseable output
        """
        result = self.run_powershell(script)
        if not result.success:
            error = result.stderr.strip() or f"exit code {result.status_code}"
            raise HostServiceError(f"{action} failed on {self.config.host}: {error}", code=result.status_code)

        output = result.stdout.strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise HostServiceError(f"{action} returned invalid JSON: {e}: {output[:200]}")
