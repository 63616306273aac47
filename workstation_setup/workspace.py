"""Scoped temporary directory removed on every exit path."""

import atexit
import shutil
import signal
import sys
import tempfile
from pathlib import Path
from typing import Dict, Optional

from workstation_setup.log import get_logger

INCOMPLETE_MESSAGE = "Installation did not complete successfully"


class TempWorkspace:
    """
    Context manager owning a temporary directory for the run.

    The directory is removed when the block exits, whether it returns,
    raises, or is interrupted. A failed exit also emits a warning before
    the original exception continues.
    """

    def __init__(self, prefix: str = "workstation_setup_"):
        self.prefix = prefix
        self.path: Optional[Path] = None
        self.logger = get_logger("workspace")

    def __enter__(self) -> "TempWorkspace":
        self.path = Path(tempfile.mkdtemp(prefix=self.prefix))
        atexit.register(self.cleanup)
        self.logger.debug(f"Created temporary workspace {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        if exc_type is not None and not _is_clean_exit(exc):
            self.logger.warning(INCOMPLETE_MESSAGE)
        return False

    def file(self, name: str) -> Path:
        """Return a path for ``name`` inside the workspace."""
        if self.path is None:
            raise RuntimeError("Workspace is not active")
        return self.path / name

    def cleanup(self) -> None:
        """Remove the workspace directory; safe to call more than once."""
        if self.path is not None and self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            self.logger.debug(f"Removed temporary workspace {self.path}")
        atexit.unregister(self.cleanup)


def _is_clean_exit(exc: Optional[BaseException]) -> bool:
    return isinstance(exc, SystemExit) and exc.code in (None, 0)


def signal_handler(signum, frame) -> None:
    """Turn a termination signal into SystemExit so cleanup handlers unwind."""
    sig_name = signal.Signals(signum).name
    get_logger().error(f"Script interrupted by {sig_name}. Cleaning up...")
    sys.exit(128 + signum)


def install_signal_handlers() -> Dict[int, object]:
    """Register ``signal_handler`` and return the handlers it replaced."""
    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
        previous[sig] = signal.signal(sig, signal_handler)
    return previous


def restore_signal_handlers(previous: Dict[int, object]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)
