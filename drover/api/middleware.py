"""Lifespan middleware preparing the store and recovering stuck discoveries.

Falcon calls ``process_startup`` once before serving requests and
``process_shutdown`` once on exit.

Usage
-----
Register the middleware when creating the Falcon app::

    from drover.api.middleware import LifespanManager

    lifespan = LifespanManager(engine, orchestrator)
    app = falcon.asgi.App(middleware=[lifespan])

"""

from __future__ import annotations

import typing as typ

from drover.errors import DroverError
from drover.logging import get_logger, log_info, log_warning
from drover.store import init_store

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from drover.discovery import DiscoveryOrchestrator

__all__ = ["LifespanManager"]

logger = get_logger(__name__)


class LifespanManager:
    """Falcon middleware owning the engine and orchestrator lifecycle.

    Parameters
    ----------
    engine
        Async engine whose schema is created at start-up and which is
        disposed at shutdown.
    orchestrator
        Orchestrator whose abandoned discoveries are recovered at start-up
        and whose running discoveries are cancelled at shutdown.

    """

    def __init__(
        self,
        engine: AsyncEngine,
        orchestrator: DiscoveryOrchestrator | None = None,
    ) -> None:
        """Initialize the middleware with the engine and orchestrator."""
        self._engine = engine
        self._orchestrator = orchestrator

    async def process_startup(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        """Create tables and reset discoveries left running by a dead process."""
        await init_store(self._engine)
        if self._orchestrator is None:
            return
        try:
            recovered = await self._orchestrator.recover_stuck_discoveries()
        except DroverError as exc:
            log_warning(logger, "Stuck discovery recovery failed: %s", exc)
            return
        if recovered:
            log_info(logger, "Recovered %d stuck discoveries at startup", recovered)

    async def process_shutdown(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        """Cancel running discoveries and release database connections."""
        if self._orchestrator is not None:
            await self._orchestrator.aclose()
        await self._engine.dispose()
