"""Ownership wrapper around a spawned crank process."""

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..exceptions import ProcessNotRunningError, SignalFailedError, SpawnFailedError
from ..logging_config import get_logger

logger = get_logger(__name__)


class ProcessHandle:
    """Owns exactly one child process started with a fixed argument vector.

    The handle never waits for the child: ``start`` returns as soon as the
    process is spawned and ``kill`` only sends the signal.
    """

    def __init__(self, popen: subprocess.Popen):
        self._popen = popen

    @classmethod
    def start(
        cls, executable: Union[str, Path], args: Sequence[str]
    ) -> "ProcessHandle":
        """Launch ``executable`` with ``args`` without blocking on it.

        Raises:
            SpawnFailedError: If the OS refuses to launch the binary
        """
        command: List[str] = [str(executable), *args]
        try:
            popen = subprocess.Popen(command, stdin=subprocess.DEVNULL)
        except (OSError, ValueError) as e:
            raise SpawnFailedError(f"could not spawn '{executable}': {e}") from e

        logger.debug(f"Spawned {executable} with PID {popen.pid}")
        return cls(popen)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.poll()

    def is_alive(self) -> bool:
        """Non-blocking liveness check."""
        return self._popen.poll() is None

    def kill(self) -> None:
        """Send SIGKILL to the process, without waiting for it to exit.

        Raises:
            ProcessNotRunningError: If the process has already exited
            SignalFailedError: If the signal could not be delivered
        """
        if not self.is_alive():
            raise ProcessNotRunningError(
                f"process {self.pid} already exited with code {self._popen.returncode}"
            )
        try:
            self._popen.kill()
        except OSError as e:
            raise SignalFailedError(f"could not kill process {self.pid}: {e}") from e

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, alive={self.is_alive()})"
