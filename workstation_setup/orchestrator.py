"""The fixed provisioning sequence and its per-phase status tracking."""

from typing import Callable, Dict, List, Optional, Tuple

from workstation_setup.config import Config
from workstation_setup.docker import DockerInstaller
from workstation_setup.errors import ProvisioningError
from workstation_setup.log import fatal, get_logger, info
from workstation_setup.packages import AptInstaller, DebInstaller
from workstation_setup.preflight import OsRelease
from workstation_setup.rbenv import RbenvInstaller
from workstation_setup.shell_profile import ShellCustomizer
from workstation_setup.ui import print_section

COMPLETED_MESSAGE = "Installation completed successfully!"
RESTART_MESSAGE = "Please restart your session for all changes to take effect."


class Provisioner:
    """Core class that runs all setup phases sequentially."""

    def __init__(
        self,
        config: Config,
        runner,
        sudo,
        workspace,
        os_release: Optional[OsRelease] = None,
        username: Optional[str] = None,
    ):
        self.config = config
        self.logger = get_logger()
        self.apt = AptInstaller(runner, sudo)
        self.deb = DebInstaller(self.apt, runner, sudo, workspace)
        self.shell = ShellCustomizer(config.bashrc)
        self.docker = DockerInstaller(
            config, self.apt, runner, sudo, os_release=os_release, username=username
        )
        self.rbenv = RbenvInstaller(config, runner)
        self.status: Dict[str, Dict[str, str]] = {
            name: {"status": "pending", "message": ""} for name, _ in self.phases()
        }

    def phases(self) -> List[Tuple[str, Callable[[], str]]]:
        return [
            ("System Update", self.phase_system_update),
            ("Prerequisites", self.phase_prerequisites),
            ("Google Chrome", self.phase_browser),
            ("Shell Customizations", self.phase_shell),
            ("Docker", self.phase_docker),
            ("rbenv & Ruby", self.phase_rbenv),
        ]

    # --- Phases ---
    def phase_system_update(self) -> str:
        self.apt.update_system()
        return "Package index refreshed and packages upgraded."

    def phase_prerequisites(self) -> str:
        self.apt.install(*self.config.prerequisites)
        return f"{len(self.config.prerequisites)} packages installed."

    def phase_browser(self) -> str:
        name = self.config.browser_package
        if self.deb.install(self.config.browser_url, name):
            return f"{name} installed."
        return f"{name} was already installed."

    def phase_shell(self) -> str:
        if self.shell.apply():
            return f"Customizations added to {self.config.bashrc}."
        return "Customizations already present."

    def phase_docker(self) -> str:
        if self.docker.install():
            return "Docker CE installed."
        return "Docker was already installed."

    def phase_rbenv(self) -> str:
        built = self.rbenv.install()
        summary = f"Global Ruby {self.config.default_ruby}"
        if built:
            return f"Built Ruby {', '.join(built)}. {summary}."
        return f"All Ruby versions already present. {summary}."

    # --- Runner ---
    def run(self) -> None:
        """
        Run every phase in order.

        Raises:
            ProvisioningError: From the first phase that fails; later phases
                are left pending.
        """
        for name, phase in self.phases():
            print_section(name)
            self.status[name] = {"status": "in_progress", "message": ""}
            try:
                message = phase()
            except ProvisioningError as e:
                self.status[name] = {"status": "failed", "message": e.message}
                raise
            except OSError as e:
                self.status[name] = {"status": "failed", "message": str(e)}
                fatal(f"{name} failed: {e}", logger=self.logger)
            self.status[name] = {"status": "success", "message": message}

        info(COMPLETED_MESSAGE)
        info(RESTART_MESSAGE)
