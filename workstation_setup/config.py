"""Configuration for the workstation setup run."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


def _default_log_file() -> Path:
    return Path.home() / ".local" / "state" / "workstation-setup" / "setup.log"


@dataclass
class Config:
    """Configuration settings for the workstation setup."""

    # User configuration
    home: Path = field(default_factory=Path.home)
    log_file: Path = field(default_factory=_default_log_file)
    verbose: bool = False

    # Preflight
    os_release_path: Path = Path("/etc/os-release")
    supported_distros: List[str] = field(default_factory=lambda: ["debian", "ubuntu"])
    probe_host: str = "google.com"

    # Package lists
    prerequisites: List[str] = field(
        default_factory=lambda: [
            "curl",
            "git",
            "wget",
            "gnupg",
            "lsb-release",
            "software-properties-common",
            "ca-certificates",
            "gcc",
            "make",
            "libssl-dev",
            "libreadline-dev",
            "zlib1g-dev",
            "libsqlite3-dev",
            "libyaml-dev",
            "bzip2",
        ]
    )

    # Browser
    browser_url: str = (
        "https://dl.google.com/linux/direct/google-chrome-stable_current_amd64.deb"
    )
    browser_package: str = "google-chrome-stable"

    # Docker
    docker_legacy_packages: List[str] = field(
        default_factory=lambda: [
            "docker.io",
            "docker-doc",
            "docker-compose",
            "podman-docker",
            "containerd",
            "runc",
        ]
    )
    docker_packages: List[str] = field(
        default_factory=lambda: [
            "docker-ce",
            "docker-ce-cli",
            "containerd.io",
            "docker-buildx-plugin",
            "docker-compose-plugin",
        ]
    )
    docker_repo_base: str = "https://download.docker.com/linux"
    keyring_dir: Path = Path("/etc/apt/keyrings")
    docker_key_path: Path = Path("/etc/apt/keyrings/docker.asc")
    docker_sources_path: Path = Path("/etc/apt/sources.list.d/docker.list")

    # rbenv & Ruby
    rbenv_repo: str = "https://github.com/rbenv/rbenv.git"
    ruby_build_repo: str = "https://github.com/rbenv/ruby-build.git"
    ruby_versions: List[str] = field(
        default_factory=lambda: ["2.6.10", "3.3.5", "3.4.1"]
    )
    default_ruby: str = "3.4.1"
    ruby_gems: List[str] = field(default_factory=lambda: ["bundler", "rake"])

    def __post_init__(self):
        """Initialize derived configuration values after the dataclass is created."""
        self.home = Path(self.home)
        self.log_file = Path(self.log_file)
        if not self.ruby_versions:
            raise ValueError("At least one Ruby version is required")
        if self.default_ruby not in self.ruby_versions:
            raise ValueError(
                f"Default Ruby {self.default_ruby} is not one of "
                f"{', '.join(self.ruby_versions)}"
            )

        self.rbenv_root = self.home / ".rbenv"
        self.rbenv_bin = self.rbenv_root / "bin" / "rbenv"
        self.ruby_build_dir = self.rbenv_root / "plugins" / "ruby-build"
        self.bashrc = self.home / ".bashrc"
        self.profile_files = [
            self.home / ".profile",
            self.home / ".bash_profile",
            self.bashrc,
        ]
