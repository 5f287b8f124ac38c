#!/usr/bin/env python3
"""
Multicrank server CLI

Restores (or builds) the crank registry, then serves the HTTP API and runs
the reconciler until interrupted.

Usage:
    multicrank -c ./crank -r https://api.devnet.solana.com -g ./id.json -s 8000
"""

import argparse
import sys
from typing import List, Optional

import uvicorn

from multicrank.api.app import create_app
from multicrank.config import (
    DEFAULT_EVENTS_PER_WORKER,
    DEFAULT_NUM_WORKERS,
    LaunchParameters,
    parse_environment_variables,
)
from multicrank.exceptions import ConfigurationError, PersistenceError
from multicrank.logging_config import get_logger, set_package_level
from multicrank.supervisor.persistence import PersistenceStore, bootstrap_registry
from multicrank.supervisor.registry import RegistryGuard


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multicrank",
        description="Serve an API for starting and monitoring market cranks",
    )
    parser.add_argument("-c", "--crank", required=True, help="Path to the crank binary")
    parser.add_argument("-r", "--rpc", required=True, help="RPC endpoint")
    parser.add_argument(
        "-g", "--gas-payer", required=True, help="Path to gas payer id.json"
    )
    parser.add_argument(
        "-s", "--socket", required=True, type=int, help="Server port"
    )
    parser.add_argument("-m", "--markets", help="Path to markets.json")
    parser.add_argument(
        "-p", "--persist", help="Path to folder where state and logs will be stored"
    )
    parser.add_argument(
        "--num-workers",
        type=int,
        default=DEFAULT_NUM_WORKERS,
        help="--num-workers passed to every crank",
    )
    parser.add_argument(
        "--events-per-worker",
        type=int,
        default=DEFAULT_EVENTS_PER_WORKER,
        help="--events-per-worker passed to every crank",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides MULTICRANK_LOG_LEVEL)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the multicrank CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = build_parser().parse_args(argv)
    logger = get_logger(__name__)

    try:
        config = parse_environment_variables()
        set_package_level(args.log_level or config.log_level)

        params = LaunchParameters.from_args(
            crank=args.crank,
            rpc=args.rpc,
            gas_payer=args.gas_payer,
            socket=args.socket,
            markets=args.markets,
            persist=args.persist,
            num_workers=args.num_workers,
            events_per_worker=args.events_per_worker,
        ).resolve()

        store = PersistenceStore(params.persist)
        registry = bootstrap_registry(params, store)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 1
    except PersistenceError as e:
        logger.error(f"Could not restore state: {e}")
        print(f"ERROR: Could not restore state: {e}", file=sys.stderr)
        return 1

    app = create_app(RegistryGuard(registry), store, config)

    logger.info(f"listening on {config.host}:{params.socket}")
    uvicorn.run(app, host=config.host, port=params.socket, log_level=config.log_level)
    return 0


if __name__ == "__main__":
    sys.exit(main())
