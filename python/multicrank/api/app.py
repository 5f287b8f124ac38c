"""FastAPI application wiring the registry, reconciler and persistence."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .. import __version__
from ..config import SupervisorConfig
from ..logging_config import get_logger
from ..supervisor.persistence import PersistenceStore
from ..supervisor.reconciler import Reconciler
from ..supervisor.registry import RegistryGuard
from .routes import router

logger = get_logger(__name__)


def create_app(
    guard: RegistryGuard,
    store: PersistenceStore,
    config: Optional[SupervisorConfig] = None,
) -> FastAPI:
    """Create the supervisor's FastAPI application.

    The lifespan starts the reconciler. On shutdown it stops the reconciler,
    writes a final snapshot and, if ``config.halt_on_shutdown`` is set, halts
    every running crank so none outlives the supervisor.

    Args:
        guard: Lock-guarded registry shared by handlers and the reconciler
        store: Where snapshots are written
        config: Runtime configuration, defaults to ``SupervisorConfig()``
    """
    config = config or SupervisorConfig()
    reconciler = Reconciler(guard, store, interval=config.reconcile_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reconciler.start()
        try:
            yield
        finally:
            await reconciler.stop()
            async with guard.locked() as registry:
                await reconciler.write_snapshot(registry.to_snapshot())
                if config.halt_on_shutdown:
                    logger.info(f"Halting {len(registry)} cranks on shutdown")
                    registry.halt_all()

    app = FastAPI(title="multicrank", version=__version__, lifespan=lifespan)
    app.state.registry_guard = guard
    app.state.store = store
    app.state.reconciler = reconciler
    app.include_router(router)
    return app
