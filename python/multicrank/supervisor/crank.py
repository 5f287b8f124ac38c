"""
Crank records: the launch configuration and lease of one market's crank.

A record is created un-started, moves to RUNNING when its process is
spawned and to EXITED when it is halted. Only the launch configuration and
the lease length are persisted; the start instant and the process handle
live only as long as the current supervisor process.
"""

import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..config import LaunchParameters
from ..exceptions import AlreadyRunningError, NoHandleError, ProcessNotRunningError
from ..logging_config import get_logger
from ..models import Market
from .process import ProcessHandle

logger = get_logger(__name__)

CONSUME_EVENTS_SUBCOMMAND = "consume-events"


class CrankState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


class CrankInstance:
    """One market's crank: launch configuration, lease and process handle.

    Attributes:
        market: Market address, the registry key
        should_run_for: Lease length in minutes, ``None`` meaning forever
        started_at: Monotonic instant of the most recent start
    """

    def __init__(
        self,
        *,
        market: str,
        crank_bin: Path,
        rpc: str,
        dex_program_id: str,
        payer: Path,
        coin_wallet: str,
        pc_wallet: str,
        log_directory: Path,
        num_workers: int = 1,
        events_per_worker: int = 10,
        should_run_for: Optional[int] = None,
        name: Optional[str] = None,
        base_mint_address: Optional[str] = None,
        base_symbol: Optional[str] = None,
        quote_mint_address: Optional[str] = None,
        quote_symbol: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.market = market
        self.name = name
        self.crank_bin = Path(crank_bin)
        self.rpc = rpc
        self.dex_program_id = dex_program_id
        self.payer = Path(payer)
        self.coin_wallet = coin_wallet
        self.pc_wallet = pc_wallet
        self.num_workers = num_workers
        self.events_per_worker = events_per_worker
        self.log_directory = Path(log_directory)
        self.should_run_for = should_run_for
        self.base_mint_address = base_mint_address
        self.base_symbol = base_symbol
        self.quote_mint_address = quote_mint_address
        self.quote_symbol = quote_symbol

        self._clock = clock
        self.state = CrankState.NOT_STARTED
        self.started_at: Optional[float] = None
        self.handle: Optional[ProcessHandle] = None

    @classmethod
    def from_market(
        cls,
        params: LaunchParameters,
        market_info: Market,
        crank_duration: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CrankInstance":
        """Construct an inactive crank for ``market_info``. No side effects."""
        return cls(
            market=market_info.address,
            name=market_info.name,
            crank_bin=params.crank,
            rpc=params.rpc,
            dex_program_id=market_info.program_id,
            payer=params.gas_payer,
            coin_wallet=market_info.base_token_account,
            pc_wallet=market_info.quote_token_account,
            num_workers=params.num_workers,
            events_per_worker=params.events_per_worker,
            log_directory=params.persist / "logs" / market_info.address,
            should_run_for=crank_duration,
            base_mint_address=market_info.base_mint_address,
            base_symbol=market_info.base_symbol,
            quote_mint_address=market_info.quote_mint_address,
            quote_symbol=market_info.quote_symbol,
            clock=clock,
        )

    def arrange_args(self) -> List[str]:
        """Assemble the crank argument vector. Order matters to the binary."""
        return [
            self.rpc,
            CONSUME_EVENTS_SUBCOMMAND,
            "--dex-program-id",
            self.dex_program_id,
            "--payer",
            str(self.payer),
            "--market",
            self.market,
            "--coin-wallet",
            self.coin_wallet,
            "--pc-wallet",
            self.pc_wallet,
            "--num-workers",
            str(self.num_workers),
            "--events-per-worker",
            str(self.events_per_worker),
            "--log-directory",
            str(self.log_directory),
        ]

    @property
    def is_running(self) -> bool:
        return (
            self.state is CrankState.RUNNING
            and self.handle is not None
            and self.handle.is_alive()
        )

    def start(self) -> None:
        """Spawn the crank process and start the lease clock.

        Raises:
            AlreadyRunningError: If the crank already owns a live process
            SpawnFailedError: If the process could not be spawned
        """
        if self.state is CrankState.RUNNING:
            raise AlreadyRunningError(
                f"crank for market {self.market} is already running"
            )

        args = self.arrange_args()
        logger.debug(f"starting `crank` with arguments: {args}")
        self.handle = ProcessHandle.start(self.crank_bin, args)
        self.started_at = self._clock()
        self.state = CrankState.RUNNING

    def halt(self) -> None:
        """Stop the crank process.

        A failed signal leaves the record RUNNING with its handle, since the
        process may still be alive. A process that had already exited is
        released and the error re-raised.

        Raises:
            NoHandleError: If there is no process handle to kill
            ProcessNotRunningError: If the process had already exited
            SignalFailedError: If the kill signal could not be sent
        """
        if self.state is not CrankState.RUNNING or self.handle is None:
            msg = f"something went wrong, no process handle for market {self.market}"
            logger.error(msg)
            raise NoHandleError(msg)

        try:
            self.handle.kill()
        except ProcessNotRunningError:
            self._release()
            raise
        self._release()

    def _release(self) -> None:
        self.handle = None
        self.started_at = None
        self.state = CrankState.EXITED

    def elapsed_minutes(self) -> Optional[int]:
        """Whole minutes since the last start, ``None`` if not started."""
        if self.started_at is None:
            return None
        return int(self._clock() - self.started_at) // 60

    def is_expired(self) -> bool:
        """True when the lease is bounded and has run its full length."""
        if self.should_run_for is None:
            return False
        elapsed = self.elapsed_minutes()
        return elapsed is not None and elapsed >= self.should_run_for

    def to_market(self) -> Market:
        return Market(
            address=self.market,
            deprecated=False,
            name=self.name,
            program_id=self.dex_program_id,
            base_mint_address=self.base_mint_address,
            quote_mint_address=self.quote_mint_address,
            base_token_account=self.coin_wallet,
            quote_token_account=self.pc_wallet,
            base_symbol=self.base_symbol,
            quote_symbol=self.quote_symbol,
        )

    def to_snapshot(self) -> Dict[str, Any]:
        """Durable form of the record; start instant and handle are left out."""
        return {
            "name": self.name,
            "crank_bin": str(self.crank_bin),
            "rpc": self.rpc,
            "dex_program_id": self.dex_program_id,
            "payer": str(self.payer),
            "market": self.market,
            "base_mint_address": self.base_mint_address,
            "base_symbol": self.base_symbol,
            "coin_wallet": self.coin_wallet,
            "quote_mint_address": self.quote_mint_address,
            "quote_symbol": self.quote_symbol,
            "pc_wallet": self.pc_wallet,
            "num_workers": self.num_workers,
            "events_per_worker": self.events_per_worker,
            "log_directory": str(self.log_directory),
            "should_run_for": self.should_run_for,
        }

    @classmethod
    def from_snapshot(
        cls, data: Dict[str, Any], clock: Callable[[], float] = time.monotonic
    ) -> "CrankInstance":
        """Rebuild an un-started record from its durable form.

        Raises:
            KeyError: If a required field is missing
        """
        return cls(
            market=data["market"],
            name=data.get("name"),
            crank_bin=Path(data["crank_bin"]),
            rpc=data["rpc"],
            dex_program_id=data["dex_program_id"],
            payer=Path(data["payer"]),
            coin_wallet=data["coin_wallet"],
            pc_wallet=data["pc_wallet"],
            num_workers=int(data.get("num_workers", 1)),
            events_per_worker=int(data.get("events_per_worker", 10)),
            log_directory=Path(data["log_directory"]),
            should_run_for=data.get("should_run_for"),
            base_mint_address=data.get("base_mint_address"),
            base_symbol=data.get("base_symbol"),
            quote_mint_address=data.get("quote_mint_address"),
            quote_symbol=data.get("quote_symbol"),
            clock=clock,
        )

    def __repr__(self) -> str:
        return (
            f"CrankInstance(market={self.market!r}, state={self.state.value}, "
            f"should_run_for={self.should_run_for}, handle={self.handle!r})"
        )
