"""
Configuration management for the crank supervisor.

Launch parameters come from the command line and are persisted with every
snapshot. Runtime behaviour of the supervisor itself is read from
environment variables.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PERSIST_PATH = "~/.multicrank"
STATE_FILE_NAME = "state.json"
MARKETS_FILE_NAME = "markets.json"

DEFAULT_NUM_WORKERS = 1
DEFAULT_EVENTS_PER_WORKER = 10


@dataclass
class LaunchParameters:
    """Parameters shared by every crank the supervisor launches.

    Attributes:
        crank: Path to the crank binary
        rpc: RPC endpoint passed to every crank
        gas_payer: Path to the gas payer keypair (id.json)
        socket: Port the HTTP server listens on
        markets: Path to the market-definition file (markets.json)
        persist: Folder where state.json and crank logs are stored
        num_workers: ``--num-workers`` value for every crank
        events_per_worker: ``--events-per-worker`` value for every crank
    """

    crank: Path
    rpc: str
    gas_payer: Path
    socket: int
    markets: Path
    persist: Path
    num_workers: int = DEFAULT_NUM_WORKERS
    events_per_worker: int = DEFAULT_EVENTS_PER_WORKER

    @classmethod
    def from_args(
        cls,
        crank: str,
        rpc: str,
        gas_payer: str,
        socket: int,
        markets: Optional[str] = None,
        persist: Optional[str] = None,
        num_workers: int = DEFAULT_NUM_WORKERS,
        events_per_worker: int = DEFAULT_EVENTS_PER_WORKER,
    ) -> "LaunchParameters":
        """Build parameters from CLI values, filling in default paths."""
        persist_path = default_persist_path() if persist is None else Path(persist)
        markets_path = (
            persist_path.expanduser() / MARKETS_FILE_NAME
            if markets is None
            else Path(markets)
        )
        return cls(
            crank=Path(crank),
            rpc=rpc,
            gas_payer=Path(gas_payer),
            socket=socket,
            markets=markets_path,
            persist=persist_path,
            num_workers=num_workers,
            events_per_worker=events_per_worker,
        )

    def resolve(self) -> "LaunchParameters":
        """Expand and absolutize paths, checking that required files exist.

        Raises:
            ConfigurationError: If the crank binary or gas payer file is missing
        """
        for label, path in (("crank binary", self.crank), ("gas payer", self.gas_payer)):
            if not path.expanduser().exists():
                raise ConfigurationError(f"{label} not found at '{path}'")

        self.crank = self.crank.expanduser().resolve()
        self.gas_payer = self.gas_payer.expanduser().resolve()
        self.markets = self.markets.expanduser().resolve()
        self.persist = self.persist.expanduser().resolve()
        return self

    @property
    def state_path(self) -> Path:
        return self.persist / STATE_FILE_NAME

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("crank", "gas_payer", "markets", "persist"):
            data[key] = str(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LaunchParameters":
        return cls(
            crank=Path(data["crank"]),
            rpc=data["rpc"],
            gas_payer=Path(data["gas_payer"]),
            socket=int(data["socket"]),
            markets=Path(data["markets"]),
            persist=Path(data["persist"]),
            num_workers=int(data.get("num_workers", DEFAULT_NUM_WORKERS)),
            events_per_worker=int(
                data.get("events_per_worker", DEFAULT_EVENTS_PER_WORKER)
            ),
        )


def default_persist_path() -> Path:
    return Path(DEFAULT_PERSIST_PATH).expanduser()


@dataclass
class SupervisorConfig:
    """Runtime configuration of the supervisor process.

    Environment variables:
    - MULTICRANK_RECONCILE_INTERVAL: seconds between reconciliation ticks
    - MULTICRANK_HOST: address the HTTP server binds to
    - MULTICRANK_LOG_LEVEL: debug, info, warning, error or critical
    - MULTICRANK_HALT_ON_SHUTDOWN: kill running cranks on graceful shutdown
    """

    reconcile_interval: int = 10
    host: str = "127.0.0.1"
    log_level: str = "info"
    halt_on_shutdown: bool = True


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_int(name: str, default: int, min_val: int = 0, max_val: int = 100) -> int:
    """Get integer from environment with validation."""
    value = os.getenv(name)
    if not value:
        return default

    try:
        parsed = int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'")
    if not (min_val <= parsed <= max_val):
        raise ConfigurationError(
            f"{name} must be between {min_val} and {max_val}, got {parsed}"
        )
    return parsed


def _get_env_str(name: str, default: str, allowed: Optional[list] = None) -> str:
    """Get string from environment with validation."""
    value = os.getenv(name, default).strip()
    if allowed and value.lower() not in allowed:
        raise ConfigurationError(f"{name} must be one of {allowed}, got '{value}'")
    if not value:
        raise ConfigurationError(f"{name} cannot be empty")
    return value


def parse_environment_variables() -> SupervisorConfig:
    """Parse environment variables and return SupervisorConfig instance."""
    try:
        return SupervisorConfig(
            reconcile_interval=_get_env_int(
                "MULTICRANK_RECONCILE_INTERVAL", 10, min_val=1, max_val=3600
            ),
            host=_get_env_str("MULTICRANK_HOST", "127.0.0.1"),
            log_level=_get_env_str(
                "MULTICRANK_LOG_LEVEL",
                "info",
                ["debug", "info", "warning", "error", "critical"],
            ).lower(),
            halt_on_shutdown=_parse_bool(
                os.getenv("MULTICRANK_HALT_ON_SHUTDOWN", "true")
            ),
        )
    except ConfigurationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
