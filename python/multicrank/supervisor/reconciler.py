"""Periodic cleanup of finished cranks and state persistence."""

import asyncio
from typing import Any, Dict, List, Optional

from ..logging_config import get_logger
from .persistence import PersistenceStore
from .registry import RegistryGuard

logger = get_logger(__name__)

DEFAULT_TICK_INTERVAL = 10


class Reconciler:
    """Evicts cranks whose lease ran out and refreshes the snapshot.

    Every ``interval`` seconds it takes the registry lock, halts and removes
    expired cranks, releases the lock and writes a snapshot. The snapshot is
    written on every tick, whether or not anything expired.
    """

    def __init__(
        self,
        guard: RegistryGuard,
        store: PersistenceStore,
        interval: float = DEFAULT_TICK_INTERVAL,
    ) -> None:
        self._guard = guard
        self._store = store
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._pending_write: Optional[asyncio.Future] = None

    async def write_snapshot(self, document: Dict[str, Any]) -> bool:
        """Write ``document`` in a worker thread after any write in flight.

        Cancelling the caller does not abandon the write; ``stop`` waits for
        it so that a later snapshot is never overwritten by an older one.

        Returns:
            True if the snapshot was written
        """
        while self._pending_write is not None:
            await self._drain_pending_write()
        self._pending_write = asyncio.ensure_future(
            asyncio.to_thread(self._store.write, document)
        )
        return await asyncio.shield(self._pending_write)

    async def _drain_pending_write(self) -> None:
        pending = self._pending_write
        if pending is None:
            return
        try:
            await asyncio.shield(pending)
        except Exception as e:
            logger.error(f"Snapshot write failed: {e}", exc_info=True)
        if self._pending_write is pending:
            self._pending_write = None

    async def tick(self) -> List[str]:
        """Run one reconciliation pass.

        Returns:
            Market ids evicted during this pass
        """
        evicted = await self._guard.evict_expired()
        document = await self._guard.to_snapshot()
        await self.write_snapshot(document)
        return evicted

    async def run(self) -> None:
        """Tick forever. Only cancellation stops the loop."""
        logger.info(f"Reconciler running every {self.interval}s")
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Reconciliation tick failed: {e}", exc_info=True)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="crank-reconciler")
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for a snapshot write still in flight."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Reconciler stopped")
        await self._drain_pending_write()
