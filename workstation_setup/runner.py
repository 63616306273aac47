"""
Command execution helpers.

``CommandRunner`` runs commands as the invoking user. ``PrivilegedRunner``
is the one place where ``sudo`` is added; installers receive both and never
build ``sudo`` command lines themselves.
"""

import os
import shutil
import subprocess
from typing import Dict, List, Mapping, Optional, Sequence

from workstation_setup.log import get_logger

# Timeouts in seconds
DEFAULT_TIMEOUT = 3600
NETWORK_TIMEOUT = 600
BUILD_TIMEOUT = 7200


class CommandRunner:
    """Run external commands with logging and timeouts."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self.env = dict(env) if env is not None else None
        self.logger = get_logger("runner")

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a command and return the CompletedProcess.

        Args:
            command: Command as a list of strings
            check: Raise CalledProcessError on a non-zero exit
            capture_output: Capture stdout/stderr instead of streaming them
            timeout: Seconds before TimeoutExpired is raised
            env: Variables merged over the current environment
            input: Text fed to the command's stdin

        Returns:
            CompletedProcess instance with command results
        """
        cmd = [str(part) for part in command]
        self.logger.debug(f"Executing: {' '.join(cmd)}")

        run_env = None
        if self.env is not None or env is not None:
            run_env = os.environ.copy()
            run_env.update(self.env or {})
            run_env.update(env or {})

        try:
            return subprocess.run(
                cmd,
                check=check,
                capture_output=capture_output,
                text=True,
                timeout=timeout,
                env=run_env,
                input=input,
            )
        except subprocess.CalledProcessError as e:
            self.logger.debug(f"Command failed with exit code {e.returncode}: {' '.join(cmd)}")
            if e.stdout:
                self.logger.debug(f"Stdout: {e.stdout.strip()}")
            if e.stderr:
                self.logger.debug(f"Stderr: {e.stderr.strip()}")
            raise
        except subprocess.TimeoutExpired:
            self.logger.debug(f"Command timed out after {timeout} seconds: {' '.join(cmd)}")
            raise

    def which(self, command: str) -> Optional[str]:
        """Return the path of ``command`` if it is available in the PATH."""
        return shutil.which(command)


class PrivilegedRunner:
    """
    Capability object for system-wide mutations.

    Every command goes through ``sudo`` and is recorded in ``audit``.
    """

    def __init__(self, runner, prefix: Sequence[str] = ("sudo",)):
        self.runner = runner
        self.prefix = list(prefix)
        self.audit: List[List[str]] = []
        self.logger = get_logger("privileged")

    def command_for(
        self, command: Sequence[str], env_assign: Optional[Dict[str, str]] = None
    ) -> List[str]:
        assignments = [f"{key}={value}" for key, value in (env_assign or {}).items()]
        return self.prefix + assignments + [str(part) for part in command]

    def run(
        self,
        command: Sequence[str],
        *,
        env_assign: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """Run ``command`` with elevated privileges."""
        cmd = self.command_for(command, env_assign)
        self.audit.append(cmd)
        self.logger.debug(f"Privileged: {' '.join(cmd)}")
        return self.runner.run(cmd, **kwargs)

    def which(self, command: str) -> Optional[str]:
        return self.runner.which(command)
