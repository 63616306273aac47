"""Preflight checks run before anything on the host is changed."""

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from workstation_setup.errors import PreflightError
from workstation_setup.log import get_logger


@dataclass
class OsRelease:
    """The fields of /etc/os-release the installers care about."""

    id: str = ""
    id_like: str = ""
    version_codename: str = ""
    pretty_name: str = ""

    @property
    def is_ubuntu(self) -> bool:
        return self.id == "ubuntu"


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse os-release ``KEY=value`` lines, honouring shell quoting."""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


def read_os_release(path: Path) -> OsRelease:
    values = parse_os_release(Path(path).read_text())
    return OsRelease(
        id=values.get("ID", "").lower(),
        id_like=values.get("ID_LIKE", "").lower(),
        version_codename=values.get("VERSION_CODENAME", ""),
        pretty_name=values.get("PRETTY_NAME", ""),
    )


class Preflight:
    """Refuse to run as root, on an unsupported OS, or without network."""

    def __init__(
        self,
        runner,
        os_release_path: Path,
        supported: Sequence[str] = ("debian", "ubuntu"),
        probe_host: str = "google.com",
        geteuid: Optional[Callable[[], int]] = None,
    ):
        self.runner = runner
        self.os_release_path = Path(os_release_path)
        self.supported = [name.lower() for name in supported]
        self.probe_host = probe_host
        self.geteuid = geteuid
        self.logger = get_logger("preflight")

    def check_not_root(self) -> None:
        if (self.geteuid or os.geteuid)() == 0:
            raise PreflightError("This script should not be run as root")

    def check_os(self) -> OsRelease:
        try:
            text = self.os_release_path.read_text()
        except OSError as e:
            raise PreflightError(
                f"Cannot read {self.os_release_path}: {e.strerror or e}"
            )

        lowered = text.lower()
        if not any(name in lowered for name in self.supported):
            raise PreflightError(
                "This script only supports "
                + "/".join(name.capitalize() for name in self.supported)
                + " systems"
            )

        release = read_os_release(self.os_release_path)
        self.logger.info(f"Detected {release.pretty_name or release.id or 'supported OS'}")
        return release

    def has_internet_connection(self) -> bool:
        """Return True if the probe host answers a single ping."""
        try:
            result = self.runner.run(
                ["ping", "-c", "1", "-W", "5", self.probe_host],
                capture_output=True,
                check=False,
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    def check_network(self) -> None:
        if not self.has_internet_connection():
            raise PreflightError("No internet connection available")
        self.logger.info("Network connectivity verified.")

    def run(self) -> OsRelease:
        """Run every check; raises PreflightError on the first failure."""
        self.check_not_root()
        release = self.check_os()
        self.check_network()
        return release
