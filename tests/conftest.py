"""
Shared test fixtures and the recording command runner.
"""

import os
import re
import subprocess
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import pytest

from workstation_setup.config import Config
from workstation_setup.runner import PrivilegedRunner
from workstation_setup.workspace import TempWorkspace

_ASSIGNMENT = re.compile(r"^[A-Z_][A-Z0-9_]*=")


def strip_privilege(command: Sequence[str]) -> List[str]:
    """Drop a leading ``sudo`` and its ``VAR=value`` assignments."""
    cmd = list(command)
    if cmd and cmd[0] == "sudo":
        cmd = cmd[1:]
        while cmd and _ASSIGNMENT.match(cmd[0]):
            cmd = cmd[1:]
    if cmd:
        cmd[0] = os.path.basename(cmd[0])
    return cmd


@dataclass
class Rule:
    prefix: List[str]
    returncode: int = 0
    stdout: Union[str, Callable[[], str]] = ""
    times: Optional[int] = None
    effect: Optional[Callable[[List[str]], None]] = None


class FakeRunner:
    """
    Test double with the CommandRunner interface.

    Commands are recorded and answered from rules registered with ``on``.
    Rules match on the command with ``sudo`` stripped and the executable
    reduced to its basename; unmatched commands succeed with no output.
    """

    def __init__(self, executables: Sequence[str] = ()):
        self.calls: List[List[str]] = []
        self.envs: List[Optional[dict]] = []
        self.inputs: List[Optional[str]] = []
        self.timeouts: List[Optional[float]] = []
        self.rules: List[Rule] = []
        self.executables = set(executables)

    def on(self, *prefix: str, returncode: int = 0, stdout="", times=None, effect=None):
        self.rules.append(Rule(list(prefix), returncode, stdout, times, effect))
        return self

    def _match(self, cmd: List[str]) -> Optional[Rule]:
        for rule in self.rules:
            if rule.times == 0:
                continue
            if cmd[: len(rule.prefix)] == rule.prefix:
                return rule
        return None

    def run(
        self,
        command,
        *,
        check=True,
        capture_output=False,
        timeout=None,
        env=None,
        input=None,
    ) -> subprocess.CompletedProcess:
        cmd = [str(part) for part in command]
        self.calls.append(cmd)
        self.envs.append(env)
        self.inputs.append(input)
        self.timeouts.append(timeout)

        returncode, stdout = 0, ""
        rule = self._match(strip_privilege(cmd))
        if rule is not None:
            if rule.times is not None:
                rule.times -= 1
            if rule.effect is not None:
                rule.effect(cmd)
            returncode = rule.returncode
            stdout = rule.stdout() if callable(rule.stdout) else rule.stdout

        if check and returncode:
            raise subprocess.CalledProcessError(returncode, cmd, output=stdout, stderr="")
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")

    def which(self, command: str) -> Optional[str]:
        if command in self.executables:
            return f"/usr/bin/{command}"
        return None

    # --- Assertions helpers ---
    def commands(self) -> List[List[str]]:
        return [strip_privilege(cmd) for cmd in self.calls]

    def find(self, *prefix: str) -> List[List[str]]:
        return [cmd for cmd in self.commands() if cmd[: len(prefix)] == list(prefix)]

    def ran(self, *prefix: str) -> bool:
        return bool(self.find(*prefix))

    def index(self, *prefix: str) -> int:
        for i, cmd in enumerate(self.commands()):
            if cmd[: len(prefix)] == list(prefix):
                return i
        raise AssertionError(f"{' '.join(prefix)} was never run")


DEBIAN_OS_RELEASE = textwrap.dedent("""\
    PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
    NAME="Debian GNU/Linux"
    VERSION_ID="12"
    VERSION="12 (bookworm)"
    VERSION_CODENAME=bookworm
    ID=debian
    HOME_URL="https://www.debian.org/"
""")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def sudo(fake_runner: FakeRunner) -> PrivilegedRunner:
    return PrivilegedRunner(fake_runner)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    return home_dir


@pytest.fixture
def os_release_file(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(DEBIAN_OS_RELEASE)
    return path


@pytest.fixture
def config(tmp_path: Path, home: Path, os_release_file: Path) -> Config:
    keyrings = tmp_path / "keyrings"
    return Config(
        home=home,
        log_file=tmp_path / "setup.log",
        os_release_path=os_release_file,
        keyring_dir=keyrings,
        docker_key_path=keyrings / "docker.asc",
        docker_sources_path=tmp_path / "docker.list",
    )


@pytest.fixture
def workspace():
    with TempWorkspace() as ws:
        yield ws


class CleanHost:
    """A fresh Debian install: nothing beyond the base system is present."""

    def __init__(self, fake_runner: FakeRunner, config: Config):
        self.config = config
        self.rubies: List[str] = []
        fake_runner.on("dpkg", "--print-architecture", stdout="amd64\n")
        fake_runner.on("id", "-nG", stdout="dev sudo\n")
        fake_runner.on("git", "clone", effect=self.clone)
        fake_runner.on("rbenv", "versions", stdout=lambda: "\n".join(self.rubies))
        fake_runner.on("rbenv", "install", effect=lambda cmd: self.rubies.append(cmd[-1]))

    def clone(self, cmd: List[str]) -> None:
        dest = Path(cmd[-1])
        dest.mkdir(parents=True)
        if dest == self.config.rbenv_root:
            self.config.rbenv_bin.parent.mkdir()
            self.config.rbenv_bin.write_text("#!/bin/sh\n")


@pytest.fixture
def clean_host(fake_runner: FakeRunner, config: Config) -> CleanHost:
    return CleanHost(fake_runner, config)
