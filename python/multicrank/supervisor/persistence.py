"""
Durable snapshots of the crank registry.

The snapshot is a single JSON document at ``<persist>/state.json`` holding
the launch parameters and every crank's launch configuration. Process
handles and lease start instants are never written, so a restored crank
must be started again before it is running.
"""

import json
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..config import STATE_FILE_NAME, LaunchParameters
from ..exceptions import PersistenceError, StateIOError, StateParseError
from ..logging_config import get_logger
from .registry import CrankRegistry

logger = get_logger(__name__)


class PersistenceStore:
    """Reads and writes registry snapshots under one persistence folder."""

    def __init__(self, persist_dir: Path) -> None:
        self.persist_dir = Path(persist_dir)
        self._write_lock = threading.Lock()

    @property
    def state_path(self) -> Path:
        return self.persist_dir / STATE_FILE_NAME

    def exists(self) -> bool:
        return self.state_path.exists()

    def write(self, document: Dict[str, Any]) -> bool:
        """Atomically write a snapshot document.

        Safe to call from several threads: each write goes through its own
        temporary file and writes are serialized up to the final replace.
        Failures are logged and reported through the return value only.

        Returns:
            True if the snapshot was written
        """
        logger.debug(f"persisting full state:\n{document}")

        try:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"could not create persistence folder: {e}")
            return False

        try:
            json_string = json.dumps(document, indent=2)
        except (TypeError, ValueError) as e:
            logger.error(f"could not serialize state: {e}")
            return False

        temp_path = self.state_path.with_name(
            f"{STATE_FILE_NAME}.{uuid.uuid4().hex}.tmp"
        )
        with self._write_lock:
            try:
                temp_path.write_text(json_string, encoding="utf-8")
                temp_path.replace(self.state_path)
            except OSError as e:
                logger.error(f"could not write to file {self.state_path}: {e}")
                return False
            finally:
                temp_path.unlink(missing_ok=True)

        return True

    def snapshot(self, registry: CrankRegistry) -> bool:
        """Write the current state of ``registry``."""
        return self.write(registry.to_snapshot())

    def load(self, path: Optional[Path] = None) -> Dict[str, Any]:
        """Read a snapshot document.

        Raises:
            StateIOError: If the file cannot be read
            StateParseError: If the file is not valid JSON
        """
        path = Path(path) if path is not None else self.state_path
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateIOError(f"could not read state file '{path}': {e}") from e

        try:
            document = json.loads(content)
        except json.JSONDecodeError as e:
            raise StateParseError(f"invalid state file '{path}': {e}") from e

        if not isinstance(document, dict):
            raise StateParseError(f"invalid state file '{path}': expected an object")
        return document

    def restore(
        self,
        path: Optional[Path] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> CrankRegistry:
        """Rebuild a registry from a snapshot. No crank is started.

        Raises:
            StateIOError: If the file cannot be read
            StateParseError: If the document does not describe a registry
        """
        document = self.load(path)
        try:
            registry = CrankRegistry.from_snapshot(document, clock=clock)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StateParseError(f"malformed state snapshot: {e!r}") from e

        logger.info(f"Restored {len(registry)} cranks from '{path or self.state_path}'")
        return registry


def _import_markets(registry: CrankRegistry) -> None:
    markets_path = registry.params.markets
    if not markets_path.exists():
        logger.warning(f"No markets file at '{markets_path}', skipping import")
        return
    try:
        registry.import_markets(markets_path)
    except PersistenceError as e:
        logger.error(f"could not import markets: {e}")


def bootstrap_registry(
    params: LaunchParameters,
    store: PersistenceStore,
    clock: Callable[[], float] = time.monotonic,
) -> CrankRegistry:
    """Build the registry at supervisor startup.

    If a snapshot exists it is restored and every crank restarted; otherwise
    a fresh registry is built from ``params``. In both cases markets from the
    market-definition file that are not yet registered are then started, and
    the result is persisted right away.

    Raises:
        StateIOError: If an existing snapshot cannot be read
        StateParseError: If an existing snapshot is malformed
    """
    if store.exists():
        logger.debug(f"restoring state from {store.state_path}...")
        registry = store.restore(clock=clock)
        failed = registry.restart_all()
        if failed:
            logger.error(f"{len(failed)} cranks could not be restarted: {failed}")
    else:
        logger.debug(f"constructing state from args {params}...")
        registry = CrankRegistry(params, clock=clock)

    _import_markets(registry)
    store.snapshot(registry)
    return registry
