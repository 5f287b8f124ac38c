"""Shared fixtures for multicrank tests."""

import stat
import sys
import time
from pathlib import Path

import pytest

from multicrank.config import LaunchParameters
from multicrank.models import Market
from multicrank.supervisor.registry import CrankRegistry

SLEEPING_CRANK = f"""#!{sys.executable}
import time
time.sleep(60)
"""


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now += minutes * 60 + seconds


def wait_for_exit(handle, timeout: float = 5.0) -> bool:
    """Poll ``handle`` until its process has exited."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not handle.is_alive():
            return True
        time.sleep(0.05)
    return False


def make_market(address: str = "M1", **overrides) -> Market:
    fields = dict(
        address=address,
        name=f"{address}/USDC",
        program_id="9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
        base_token_account=f"{address}-base-account",
        quote_token_account=f"{address}-quote-account",
        base_mint_address=f"{address}-base-mint",
        quote_mint_address=f"{address}-quote-mint",
        base_symbol=address,
        quote_symbol="USDC",
    )
    fields.update(overrides)
    return Market(**fields)


@pytest.fixture
def fake_crank_bin(tmp_path) -> Path:
    """An executable standing in for the crank binary; it just sleeps."""
    path = tmp_path / "crank"
    path.write_text(SLEEPING_CRANK)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def gas_payer(tmp_path) -> Path:
    path = tmp_path / "id.json"
    path.write_text("[1, 2, 3]")
    return path


@pytest.fixture
def params(tmp_path, fake_crank_bin, gas_payer) -> LaunchParameters:
    persist = tmp_path / "persist"
    return LaunchParameters(
        crank=fake_crank_bin,
        rpc="https://api.devnet.solana.com",
        gas_payer=gas_payer,
        socket=8000,
        markets=persist / "markets.json",
        persist=persist,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(params, clock):
    """A registry whose running cranks are killed after the test."""
    registry = CrankRegistry(params, clock=clock)
    yield registry
    registry.halt_all()


@pytest.fixture
def market_factory():
    return make_market


@pytest.fixture
def wait_exit():
    return wait_for_exit
