"""
Registry of cranks keyed by market address.

``CrankRegistry`` holds the bookkeeping and is not safe for concurrent use
on its own. ``RegistryGuard`` wraps it behind a single asyncio lock; every
caller (HTTP handlers, the reconciler) goes through the guard.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..config import LaunchParameters
from ..exceptions import (
    DuplicateMarketError,
    MarketNotFoundError,
    MulticrankError,
    NoHandleError,
    ProcessNotRunningError,
    SpawnFailedError,
    StateIOError,
    StateParseError,
)
from ..logging_config import get_logger
from ..models import Market, Markets
from .crank import CrankInstance

logger = get_logger(__name__)


class CrankRegistry:
    """Authoritative mapping from market address to crank.

    Args:
        params: Launch parameters shared by every crank
        cranks: Initial records, typically restored from a snapshot
        clock: Monotonic clock used for crank leases
    """

    def __init__(
        self,
        params: LaunchParameters,
        cranks: Optional[Dict[str, CrankInstance]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.params = params
        self.cranks: Dict[str, CrankInstance] = dict(cranks or {})
        self._clock = clock

    def __contains__(self, market_id: str) -> bool:
        return market_id in self.cranks

    def __len__(self) -> int:
        return len(self.cranks)

    def get(self, market_id: str) -> Optional[CrankInstance]:
        return self.cranks.get(market_id)

    def add_market(self, market: Market, crank_duration: Optional[int] = None) -> None:
        """Construct and start a crank, registering it only once it runs.

        Raises:
            DuplicateMarketError: If the market already has a crank
            SpawnFailedError: If the crank process could not be spawned
        """
        market_id = market.address
        if market_id in self.cranks:
            raise DuplicateMarketError(market_id)

        crank = CrankInstance.from_market(
            self.params, market, crank_duration, clock=self._clock
        )
        crank.start()
        self.cranks[market_id] = crank

        duration = f"{crank_duration} minutes" if crank_duration is not None else "ever"
        logger.info(f"Started crank for market {market_id}, running for {duration}")

    def purge_market(self, market_id: str) -> Market:
        """Halt the crank for ``market_id`` and remove it.

        A crank whose process is already gone is removed as well; the
        inconsistency is logged. A failed kill signal leaves the crank
        registered so the purge can be retried.

        Raises:
            MarketNotFoundError: If no crank is registered for the market
            SignalFailedError: If the kill signal could not be sent
        """
        crank = self.cranks.get(market_id)
        if crank is None:
            raise MarketNotFoundError(market_id)

        try:
            crank.halt()
        except (NoHandleError, ProcessNotRunningError) as e:
            logger.warning(f"Purging market {market_id} without a live process: {e}")

        del self.cranks[market_id]
        logger.info(f"Purged crank for market {market_id}")
        return crank.to_market()

    def list_markets(self) -> List[Market]:
        return [crank.to_market() for crank in self.cranks.values()]

    def restart_all(self) -> List[str]:
        """Start every crank that is not running.

        Failures are logged and leave the crank registered without a process.

        Returns:
            Market ids whose restart failed
        """
        failed: List[str] = []
        for market_id, crank in self.cranks.items():
            if crank.is_running:
                continue
            try:
                crank.start()
                logger.info(f"Restarted crank for market {market_id}")
            except MulticrankError as e:
                logger.error(f"could not restart crank for market {market_id}: {e}")
                failed.append(market_id)
        return failed

    def evict_expired(self) -> List[str]:
        """Halt and remove every crank whose lease has run out.

        A halt failure is logged and never prevents the eviction.

        Returns:
            Market ids that were evicted
        """
        finished = [
            market_id for market_id, crank in self.cranks.items() if crank.is_expired()
        ]

        for market_id in finished:
            logger.info(f"cranking for market {market_id} finished, cleaning up...")
            crank = self.cranks.pop(market_id)
            try:
                crank.halt()
            except MulticrankError as e:
                logger.error(f"cannot halt crank for market {market_id}: {e}")

        return finished

    def halt_all(self) -> None:
        """Halt every running crank, keeping the records."""
        for market_id, crank in self.cranks.items():
            if not crank.is_running:
                continue
            try:
                crank.halt()
            except MulticrankError as e:
                logger.error(f"cannot halt crank for market {market_id}: {e}")

    def import_markets(self, path: Optional[Path] = None) -> List[str]:
        """Start cranks for markets in a market-definition file.

        Markets already registered are skipped. A market whose crank fails
        to spawn is logged and skipped.

        Args:
            path: Market-definition file, defaults to ``params.markets``

        Returns:
            Market ids that were added

        Raises:
            StateIOError: If the file cannot be read
            StateParseError: If the file is not a market-definition object
        """
        path = Path(path) if path is not None else self.params.markets
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateIOError(f"could not read markets file '{path}': {e}") from e

        try:
            markets = Markets.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise StateParseError(f"invalid markets file '{path}': {e}") from e

        added: List[str] = []
        for market_id, market in markets.items():
            if market_id in self.cranks:
                continue
            try:
                self.add_market(market, None)
            except (DuplicateMarketError, SpawnFailedError) as e:
                logger.error(f"could not import market {market_id}: {e}")
                continue
            added.append(market_id)

        logger.info(f"Imported {len(added)} markets from '{path}'")
        return added

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "params": self.params.to_dict(),
            "cranks": {
                market_id: crank.to_snapshot()
                for market_id, crank in self.cranks.items()
            },
        }

    @classmethod
    def from_snapshot(
        cls, data: Dict[str, Any], clock: Callable[[], float] = time.monotonic
    ) -> "CrankRegistry":
        """Rebuild a registry whose cranks are all un-started.

        Raises:
            KeyError, TypeError, ValueError: If the snapshot is malformed
        """
        params = LaunchParameters.from_dict(data["params"])
        cranks = {
            market_id: CrankInstance.from_snapshot(record, clock=clock)
            for market_id, record in data["cranks"].items()
        }
        return cls(params, cranks, clock=clock)


class RegistryGuard:
    """Serializes all access to a ``CrankRegistry`` behind one asyncio lock."""

    def __init__(self, registry: CrankRegistry) -> None:
        self._registry = registry
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[CrankRegistry]:
        """Hold the lock for the duration of the block."""
        async with self._lock:
            yield self._registry

    async def add_market(
        self, market: Market, crank_duration: Optional[int] = None
    ) -> None:
        async with self.locked() as registry:
            registry.add_market(market, crank_duration)

    async def purge_market(self, market_id: str) -> Market:
        async with self.locked() as registry:
            return registry.purge_market(market_id)

    async def list_markets(self) -> List[Market]:
        async with self.locked() as registry:
            return registry.list_markets()

    async def evict_expired(self) -> List[str]:
        async with self.locked() as registry:
            return registry.evict_expired()

    async def to_snapshot(self) -> Dict[str, Any]:
        async with self.locked() as registry:
            return registry.to_snapshot()
