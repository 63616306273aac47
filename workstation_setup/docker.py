"""Docker CE installation from the vendor APT repository."""

import os
import pwd
from typing import Optional

from workstation_setup.config import Config
from workstation_setup.log import fatal, get_logger
from workstation_setup.packages import AptInstaller
from workstation_setup.preflight import OsRelease, read_os_release
from workstation_setup.runner import NETWORK_TIMEOUT
from workstation_setup.steps import STEP_FAILURES, Step, StepPolicy, execute, exit_code_for

RELOGIN_MESSAGE = "Please log out and back in for Docker group changes to take effect"


def current_username() -> str:
    """Name of the effective user, independent of LOGNAME and USER."""
    return pwd.getpwuid(os.geteuid()).pw_name


class DockerInstaller:
    """
    Install Docker Engine unless a ``docker`` executable already resolves.

    The repository key and source entry are written when missing or stale;
    the invoking user is added to the ``docker`` group if needed.
    """

    LEGACY_REMOVAL_POLICY = StepPolicy.WARN_ONLY
    REPOSITORY_POLICY = StepPolicy.FATAL
    GROUP_POLICY = StepPolicy.FATAL

    def __init__(
        self,
        config: Config,
        apt: AptInstaller,
        runner,
        sudo,
        os_release: Optional[OsRelease] = None,
        username: Optional[str] = None,
    ):
        self.config = config
        self.apt = apt
        self.runner = runner
        self.sudo = sudo
        self._os_release = os_release
        self.username = username or current_username()
        self.logger = get_logger("docker")

    @property
    def os_release(self) -> OsRelease:
        if self._os_release is None:
            self._os_release = read_os_release(self.config.os_release_path)
        return self._os_release

    @property
    def repo_url(self) -> str:
        distro = "ubuntu" if self.os_release.is_ubuntu else "debian"
        return f"{self.config.docker_repo_base}/{distro}"

    def is_installed(self) -> bool:
        return self.runner.which("docker") is not None

    def remove_conflicting_packages(self) -> None:
        for package in self.config.docker_legacy_packages:
            self.apt.remove(package)

    def ensure_keyring_dir(self) -> None:
        keyring_dir = str(self.config.keyring_dir)
        execute(
            Step(
                description=f"Creating {keyring_dir}",
                action=lambda: self.sudo.run(["install", "-m", "0755", "-d", keyring_dir]),
                policy=self.REPOSITORY_POLICY,
                failure_message=f"Failed to create {keyring_dir}",
            ),
            self.logger,
        )

    def architecture(self) -> str:
        try:
            result = self.runner.run(["dpkg", "--print-architecture"], capture_output=True)
        except STEP_FAILURES as e:
            fatal(
                "Cannot determine the package architecture",
                exit_code_for(e),
                self.logger,
            )
        return result.stdout.strip()

    def source_entry(self, architecture: str) -> str:
        codename = self.os_release.version_codename
        if not codename:
            fatal(
                f"Cannot determine VERSION_CODENAME from {self.config.os_release_path}",
                logger=self.logger,
            )
        return (
            f"deb [arch={architecture} signed-by={self.config.docker_key_path}] "
            f"{self.repo_url} {codename} stable\n"
        )

    def installed_source_entry(self) -> Optional[str]:
        try:
            return self.config.docker_sources_path.read_text(
                encoding="utf-8", errors="replace"
            )
        except OSError:
            return None

    def add_repository(self) -> bool:
        """
        Make sure the signing key and the source entry are in place.

        The entry is worked out before anything is written. The key and the
        source file are checked separately, so a run that stopped halfway
        is completed by the next one.

        Returns:
            True if the key or the source entry was written.
        """
        key_path = self.config.docker_key_path
        sources_path = self.config.docker_sources_path
        entry = self.source_entry(self.architecture())

        fetch = not key_path.exists()
        write = self.installed_source_entry() != entry
        if not fetch and not write:
            self.logger.info(f"Docker repository already configured in {sources_path}")
            return False

        def fetch_key():
            self.sudo.run(
                ["curl", "-fsSL", f"{self.repo_url}/gpg", "-o", str(key_path)],
                timeout=NETWORK_TIMEOUT,
            )
            self.sudo.run(["chmod", "a+r", str(key_path)])

        self.logger.info("Adding Docker repository...")
        if fetch:
            execute(
                Step(
                    description="Fetching Docker signing key",
                    action=fetch_key,
                    policy=self.REPOSITORY_POLICY,
                    failure_message="Failed to fetch the Docker signing key",
                ),
                self.logger,
            )
        else:
            self.logger.info(f"Docker signing key already present at {key_path}")

        if write:
            execute(
                Step(
                    description="Writing Docker package source",
                    action=lambda: self.sudo.run(
                        ["tee", str(sources_path)], input=entry, capture_output=True
                    ),
                    policy=self.REPOSITORY_POLICY,
                    failure_message=f"Failed to write {sources_path}",
                ),
                self.logger,
            )

        self.apt.refresh_index()
        return True

    def in_docker_group(self) -> bool:
        result = self.runner.run(
            ["id", "-nG", self.username], capture_output=True, check=False
        )
        return "docker" in (result.stdout or "").split()

    def ensure_group_membership(self) -> bool:
        """Add the user to the docker group; True if membership changed."""
        if self.in_docker_group():
            self.logger.info(f"{self.username} already in docker group.")
            return False

        execute(
            Step(
                description=f"Adding {self.username} to docker group",
                action=lambda: self.sudo.run(["usermod", "-aG", "docker", self.username]),
                policy=self.GROUP_POLICY,
                failure_message=f"Failed to add {self.username} to the docker group",
            ),
            self.logger,
        )
        self.logger.warning(RELOGIN_MESSAGE)
        return True

    def install(self) -> bool:
        """
        Install Docker CE.

        Returns:
            True if Docker was installed, False if it was already available.
        """
        self.logger.info("Installing Docker...")
        if self.is_installed():
            self.logger.info("Docker is already installed")
            return False

        self.remove_conflicting_packages()
        self.ensure_keyring_dir()
        self.add_repository()
        self.apt.install(*self.config.docker_packages)
        self.ensure_group_membership()
        self.logger.info("Docker installed successfully")
        return True
