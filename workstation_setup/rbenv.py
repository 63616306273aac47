"""rbenv, ruby-build and the pinned Ruby interpreters."""

import os
from pathlib import Path
from typing import Dict, List, Optional, Set

from workstation_setup.config import Config
from workstation_setup.log import fatal, get_logger
from workstation_setup.runner import BUILD_TIMEOUT, NETWORK_TIMEOUT
from workstation_setup.shell_profile import ManagedBlock, apply_block
from workstation_setup.steps import Step, StepPolicy, execute

RBENV_INIT = ManagedBlock(
    key="rbenv",
    legacy_markers=("rbenv init",),
    body="""
# rbenv configuration
export PATH="$HOME/.rbenv/bin:$PATH"
eval "$(rbenv init -)"
export PATH="$HOME/.rbenv/plugins/ruby-build/bin:$PATH"
""",
)


class RbenvInstaller:
    """
    Install rbenv with the ruby-build plugin, wire it into the shell
    profiles, build the configured Ruby versions and pick a global default.

    Commands run against ``~/.rbenv/bin/rbenv`` with an explicit environment
    rather than relying on an initialized interactive shell.
    """

    CLONE_POLICY = StepPolicy.FATAL
    BUILD_POLICY = StepPolicy.FATAL
    GEM_POLICY = StepPolicy.WARN_ONLY
    REHASH_POLICY = StepPolicy.WARN_ONLY
    GLOBAL_POLICY = StepPolicy.FATAL

    def __init__(self, config: Config, runner):
        self.config = config
        self.runner = runner
        self.logger = get_logger("rbenv")

    # --- Repository bootstrap ---
    def clone(self, repo: str, dest: Path, label: str) -> bool:
        """Clone ``repo`` into ``dest`` unless the directory exists."""
        if dest.is_dir():
            self.logger.info(f"{label} is already installed")
            return False

        execute(
            Step(
                description=f"Cloning {repo}",
                action=lambda: self.runner.run(
                    ["git", "clone", repo, str(dest)], timeout=NETWORK_TIMEOUT
                ),
                policy=self.CLONE_POLICY,
                failure_message=f"Failed to clone {label} from {repo}",
            ),
            self.logger,
        )
        self.logger.info(f"{label} installed successfully")
        return True

    def bootstrap(self) -> None:
        self.clone(self.config.rbenv_repo, self.config.rbenv_root, "rbenv")
        self.clone(
            self.config.ruby_build_repo, self.config.ruby_build_dir, "ruby-build plugin"
        )

    # --- Shell profile wiring ---
    def update_shell_profiles(self) -> List[Path]:
        """Add the rbenv block to each profile file; return those changed."""
        changed = []
        for profile in self.config.profile_files:
            if apply_block(profile, RBENV_INIT):
                self.logger.info(f"Updated {profile} with rbenv configuration")
                changed.append(profile)

        if not changed:
            self.logger.warning("rbenv configuration already exists in shell profiles")
        return changed

    # --- Ruby versions ---
    def env(self, version: Optional[str] = None) -> Dict[str, str]:
        root = self.config.rbenv_root
        path = os.pathsep.join(
            [
                str(root / "bin"),
                str(root / "shims"),
                str(self.config.ruby_build_dir / "bin"),
                os.environ.get("PATH", ""),
            ]
        )
        env = {"RBENV_ROOT": str(root), "PATH": path}
        if version:
            env["RBENV_VERSION"] = version
        return env

    def rbenv(self, *args: str, version: Optional[str] = None, **kwargs):
        return self.runner.run(
            [str(self.config.rbenv_bin), *args], env=self.env(version), **kwargs
        )

    def installed_versions(self) -> Set[str]:
        result = self.rbenv("versions", "--bare", capture_output=True, check=False)
        return {line.strip() for line in (result.stdout or "").splitlines() if line.strip()}

    def install_version(self, version: str) -> None:
        """Build ``version`` and add the supporting gems to it."""
        self.logger.info(f"Installing Ruby {version}...")
        execute(
            Step(
                description=f"Building Ruby {version}",
                action=lambda: self.rbenv("install", "-v", version, timeout=BUILD_TIMEOUT),
                policy=self.BUILD_POLICY,
                failure_message=f"Failed to install Ruby {version}",
            ),
            self.logger,
        )

        for gem in self.config.ruby_gems:
            execute(
                Step(
                    description=f"Installing {gem} for Ruby {version}",
                    action=lambda gem=gem: self.rbenv(
                        "exec",
                        "gem",
                        "install",
                        gem,
                        "--no-document",
                        version=version,
                        timeout=NETWORK_TIMEOUT,
                    ),
                    policy=self.GEM_POLICY,
                    failure_message=f"Failed to install {gem} for Ruby {version}",
                ),
                self.logger,
            )

        execute(
            Step(
                description="Refreshing rbenv shims",
                action=lambda: self.rbenv("rehash"),
                policy=self.REHASH_POLICY,
                failure_message="Failed to refresh rbenv shims",
            ),
            self.logger,
        )

    def install_versions(self) -> List[str]:
        """
        Install every configured Ruby version that is missing, then set the
        global default once.

        Returns:
            The versions that were built during this call
        """
        if not self.config.rbenv_bin.exists():
            fatal(f"rbenv not found at {self.config.rbenv_bin}", logger=self.logger)

        present = self.installed_versions()
        built = []
        for version in self.config.ruby_versions:
            if version in present:
                self.logger.info(f"Ruby {version} is already installed")
                continue
            self.install_version(version)
            built.append(version)

        default = self.config.default_ruby
        execute(
            Step(
                description=f"Setting global Ruby to {default}",
                action=lambda: self.rbenv("global", default),
                policy=self.GLOBAL_POLICY,
                failure_message=f"Failed to set global Ruby version {default}",
            ),
            self.logger,
        )
        self.logger.info("Ruby versions installed and configured successfully")
        return built

    def install(self) -> List[str]:
        self.logger.info("Installing rbenv and Ruby versions...")
        self.bootstrap()
        self.update_shell_profiles()
        return self.install_versions()
