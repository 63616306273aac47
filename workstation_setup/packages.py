"""APT package installation and .deb artifacts installed from a URL."""

from pathlib import Path
from typing import Optional

from workstation_setup.log import fatal, get_logger
from workstation_setup.runner import NETWORK_TIMEOUT
from workstation_setup.steps import (
    STEP_FAILURES,
    Step,
    StepPolicy,
    describe_failure,
    execute,
    exit_code_for,
)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
INSTALLED_STATUS = "install ok installed"


class AptInstaller:
    """Thin wrapper over apt-get and dpkg-query."""

    INSTALL_POLICY = StepPolicy.FATAL
    REMOVE_POLICY = StepPolicy.WARN_ONLY

    def __init__(self, runner, sudo):
        self.runner = runner
        self.sudo = sudo
        self.logger = get_logger("apt")

    def refresh_index(self) -> None:
        execute(
            Step(
                description="Refreshing package index",
                action=lambda: self.sudo.run(
                    ["apt-get", "update"], timeout=NETWORK_TIMEOUT
                ),
                policy=StepPolicy.FATAL,
                failure_message="Failed to update package index",
            ),
            self.logger,
        )

    def update_system(self) -> None:
        """Refresh the package index and upgrade every installed package."""
        self.logger.info("Updating system packages...")
        self.refresh_index()
        execute(
            Step(
                description="Upgrading installed packages",
                action=lambda: self.sudo.run(
                    ["apt-get", "upgrade", "-y"], env_assign=APT_ENV
                ),
                policy=StepPolicy.FATAL,
                failure_message="Failed to upgrade system packages",
            ),
            self.logger,
        )

    def install(self, *packages: str) -> None:
        """Install ``packages`` non-interactively; any failure is fatal."""
        names = " ".join(packages)
        self.logger.info(f"Installing packages: {names}...")
        execute(
            Step(
                description=f"Installing {names}",
                action=lambda: self.sudo.run(
                    ["apt-get", "install", "-y", *packages], env_assign=APT_ENV
                ),
                policy=self.INSTALL_POLICY,
                failure_message=f"Failed to install: {names}",
            ),
            self.logger,
        )

    def remove(self, package: str) -> bool:
        """
        Remove ``package`` on a best-effort basis.

        apt-get exits non-zero for packages it does not know at all, so a
        failure here is only a warning.
        """
        return execute(
            Step(
                description=f"Removing {package}",
                action=lambda: self.sudo.run(
                    ["apt-get", "remove", "-y", package], env_assign=APT_ENV
                ),
                policy=self.REMOVE_POLICY,
                failure_message=f"Could not remove {package}",
            ),
            self.logger,
        )

    def is_installed(self, name: str) -> bool:
        """Return True if dpkg reports ``name`` as fully installed."""
        try:
            result = self.runner.run(
                ["dpkg-query", "-W", "--showformat=${Status}", name],
                capture_output=True,
                check=False,
            )
        except STEP_FAILURES:
            return False
        return INSTALLED_STATUS in (result.stdout or "")


class DebInstaller:
    """Download a .deb into the workspace and install it with dpkg."""

    INSTALL_POLICY = StepPolicy.RETRY_THEN_FATAL

    def __init__(self, apt: AptInstaller, runner, sudo, workspace):
        self.apt = apt
        self.runner = runner
        self.sudo = sudo
        self.workspace = workspace
        self.logger = get_logger("deb")

    def download(self, url: str, dest: Path, name: str) -> None:
        """Fetch ``url`` with wget, falling back to curl; fatal if both fail."""
        last_error: Optional[BaseException] = None
        for command in (
            ["wget", "-q", url, "-O", str(dest)],
            ["curl", "-fsSL", "-o", str(dest), url],
        ):
            try:
                self.runner.run(command, timeout=NETWORK_TIMEOUT)
                return
            except STEP_FAILURES as e:
                last_error = e
                self.logger.debug(f"{command[0]} failed: {describe_failure(e)}")
        fatal(f"Failed to download {name}", exit_code_for(last_error), self.logger)

    def install(self, url: str, name: str) -> bool:
        """
        Install the package ``name`` from ``url`` unless it is already there.

        Returns:
            True if the package was installed, False if it was already present.
        """
        self.logger.info(f"Installing {name}...")

        if self.apt.is_installed(name):
            self.logger.info(f"{name} is already installed")
            return False

        deb_path = self.workspace.file(f"{name}.deb")
        self.download(url, deb_path, name)

        execute(
            Step(
                description=f"Installing {deb_path.name} with dpkg",
                action=lambda: self.sudo.run(["dpkg", "-i", str(deb_path)]),
                policy=self.INSTALL_POLICY,
                failure_message=f"Failed to install {name}",
                repair=Step(
                    description="Fixing missing dependencies...",
                    action=lambda: self.sudo.run(
                        ["apt-get", "install", "-f", "-y"], env_assign=APT_ENV
                    ),
                    failure_message=f"Failed to fix dependencies for {name}",
                ),
            ),
            self.logger,
        )

        self.logger.info(f"{name} installed successfully")
        return True
