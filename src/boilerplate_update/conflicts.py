"""Interactive conflict resolution.

When the merge leaves conflicts and the caller opted in, an interactive
process (by default `git mergetool`) is started on the invoking terminal.
The caller gets a handle to it straight away; the rest of the update waits
for the process to exit before touching the working tree again.

State machine:

    NO_CONFLICTS                                  (terminal)
    CONFLICTS_DETECTED -> AWAITING_INTERACTIVE_RESOLUTION -> RESOLVED
                                                          -> ABANDONED
"""

import logging
import subprocess
import threading
from enum import Enum
from pathlib import Path
from typing import IO, List, Optional, Union

from .core import MergeOutcome
from .errors import ConfigError

logger = logging.getLogger(__name__)

Stream = Union[None, int, IO]


class ConflictState(str, Enum):
    """Lifecycle of conflict handling for one update."""

    NO_CONFLICTS = "no_conflicts"
    CONFLICTS_DETECTED = "conflicts_detected"
    AWAITING_INTERACTIVE_RESOLUTION = "awaiting_interactive_resolution"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


def detect_conflicts(outcome: MergeOutcome) -> ConflictState:
    """Initial conflict state after a merge."""
    return ConflictState.CONFLICTS_DETECTED if outcome.has_conflicts else ConflictState.NO_CONFLICTS


class ConflictResolutionProcess:
    """Handle to the interactive resolution process.

    The process runs independently of the update's completion future; use
    wait()/poll() to follow its own lifecycle. Exit status 0 means the user
    finished resolving; anything else (including terminate()) is abandonment.
    """

    def __init__(self, popen: subprocess.Popen, command: List[str]):
        self._popen = popen
        self.command = command
        self._state = ConflictState.AWAITING_INTERACTIVE_RESOLUTION
        self._terminated = False
        self._lock = threading.Lock()

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def stdin(self) -> Optional[IO]:
        return self._popen.stdin

    @property
    def stdout(self) -> Optional[IO]:
        return self._popen.stdout

    @property
    def stderr(self) -> Optional[IO]:
        return self._popen.stderr

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode

    @property
    def state(self) -> ConflictState:
        self.poll()
        return self._state

    def poll(self) -> Optional[int]:
        """Return the exit status if the process has exited, else None."""
        returncode = self._popen.poll()
        if returncode is not None:
            self._settle(returncode)
        return returncode

    def wait(self, timeout: Optional[float] = None) -> int:
        """Block until the process exits and return its exit status."""
        returncode = self._popen.wait(timeout)
        self._settle(returncode)
        return returncode

    def terminate(self) -> None:
        """Stop the process; resolution counts as abandoned."""
        with self._lock:
            self._terminated = True
        if self._popen.poll() is None:
            self._popen.terminate()

    def _settle(self, returncode: int) -> None:
        with self._lock:
            if self._state != ConflictState.AWAITING_INTERACTIVE_RESOLUTION:
                return
            if returncode == 0 and not self._terminated:
                self._state = ConflictState.RESOLVED
            else:
                self._state = ConflictState.ABANDONED
            logger.debug("Conflict resolution %s (exit status %s)", self._state.value, returncode)


def spawn_resolution_process(
    root: Path,
    command: List[str],
    stdin: Stream = None,
    stdout: Stream = None,
    stderr: Stream = None,
) -> ConflictResolutionProcess:
    """Start the interactive resolution command in root.

    Streams default to the invoking terminal's standard streams.

    Raises:
        ConfigError: If the command cannot be started
    """
    logger.info("Starting conflict resolution: %s", " ".join(command))
    try:
        popen = subprocess.Popen(command, cwd=str(root), stdin=stdin, stdout=stdout, stderr=stderr)
    except OSError as e:
        raise ConfigError(f"Cannot start conflict resolution command {' '.join(command)!r}: {e}") from e
    return ConflictResolutionProcess(popen, command)
