"""Multicrank: a supervisor for per-market crank processes.

Submodules:
- supervisor: process handles, crank records, registry, reconciler, persistence
- api: FastAPI application exposing start/list/purge endpoints
- scripts: the ``multicrank`` command line entry point
"""

__version__ = "0.1.0"
