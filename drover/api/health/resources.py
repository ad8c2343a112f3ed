"""Liveness and readiness checks for container orchestration.

Neither check touches the store, so both stay available while the
database is unreachable.

Usage
-----
Register health endpoints on the Falcon app::

    from drover.api.health.resources import HealthResource, ReadyResource

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(orchestrator))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from drover.discovery import DiscoveryOrchestrator

__all__ = ["HealthResource", "ReadyResource"]


class HealthResource:
    """Liveness check resource returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness check resource returning ``{"status": "ready"}``.

    When an orchestrator is wired in, the body also reports whether this
    process is currently running a discovery.
    """

    def __init__(self, orchestrator: DiscoveryOrchestrator | None = None) -> None:
        """Optionally attach the orchestrator whose activity is reported."""
        self._orchestrator = orchestrator

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with readiness status.

        """
        media: dict[str, object] = {"status": "ready"}
        if self._orchestrator is not None:
            media["discovery_running"] = self._orchestrator.is_running()
        resp.media = media
        resp.status = HTTPStatus.OK
