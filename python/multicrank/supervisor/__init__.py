"""
Crank process supervision.

This module owns the lifecycle of per-market crank processes: spawning and
killing them, tracking their leases, evicting expired ones and keeping the
bookkeeping durable across supervisor restarts.
"""

from .crank import CrankInstance, CrankState
from .persistence import PersistenceStore, bootstrap_registry
from .process import ProcessHandle
from .reconciler import Reconciler
from .registry import CrankRegistry, RegistryGuard

__all__ = [
    "ProcessHandle",
    "CrankInstance",
    "CrankState",
    "CrankRegistry",
    "RegistryGuard",
    "Reconciler",
    "PersistenceStore",
    "bootstrap_registry",
]
