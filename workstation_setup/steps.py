"""
Declared failure policies for provisioning steps.

A ``Step`` pairs an action with what happens when it fails, so installers
state their policy as data instead of spreading try/except blocks around.
"""

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from workstation_setup.log import fatal, get_logger

# Failures a step can recover from; anything else propagates untouched
STEP_FAILURES = (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError)


class StepPolicy(Enum):
    FATAL = "fatal"
    WARN_ONLY = "warn_only"
    RETRY_THEN_FATAL = "retry_then_fatal"


@dataclass
class Step:
    """
    A single provisioning action and its failure policy.

    Attributes:
        description: Logged before the action runs
        action: Callable performing the work
        policy: What a failure of ``action`` means for the run
        failure_message: Message used for the warning or fatal error
        repair: For RETRY_THEN_FATAL, a step run between the two attempts
    """

    description: str
    action: Callable[[], Any]
    policy: StepPolicy = StepPolicy.FATAL
    failure_message: Optional[str] = None
    repair: Optional["Step"] = None

    @property
    def message(self) -> str:
        return self.failure_message or f"{self.description} failed"


def exit_code_for(error: BaseException) -> int:
    """Map a step failure onto a process exit code."""
    if isinstance(error, subprocess.CalledProcessError):
        if error.returncode < 0:
            # Killed by a signal
            return 128 - error.returncode
        return error.returncode or 1
    if isinstance(error, FileNotFoundError):
        return 127
    return 1


def describe_failure(error: BaseException) -> str:
    if isinstance(error, subprocess.CalledProcessError):
        return f"exit code {error.returncode}"
    if isinstance(error, subprocess.TimeoutExpired):
        return f"timed out after {error.timeout} seconds"
    return str(error)


def execute(step: Step, logger: Optional[logging.Logger] = None) -> bool:
    """
    Run ``step`` according to its policy.

    Returns:
        True if the action succeeded, False if it failed under WARN_ONLY.

    Raises:
        ProvisioningError: If the action failed under FATAL, or failed twice
            under RETRY_THEN_FATAL, or the repair step failed.
    """
    logger = logger or get_logger()
    logger.debug(f"{step.description} [{step.policy.value}]")

    try:
        step.action()
        return True
    except STEP_FAILURES as e:
        first_error = e

    if step.policy is StepPolicy.WARN_ONLY:
        logger.warning(f"{step.message} ({describe_failure(first_error)})")
        return False

    if step.policy is StepPolicy.FATAL:
        fatal(step.message, exit_code_for(first_error), logger)

    logger.info(f"{step.description} failed ({describe_failure(first_error)}); retrying once")
    if step.repair is not None:
        logger.info(step.repair.description)
        execute(
            Step(
                description=step.repair.description,
                action=step.repair.action,
                policy=StepPolicy.FATAL,
                failure_message=step.repair.failure_message,
            ),
            logger,
        )

    try:
        step.action()
    except STEP_FAILURES as e:
        fatal(step.message, exit_code_for(e), logger)
    return True
