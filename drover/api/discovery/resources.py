"""Resources that start, observe, cancel and reset discovery runs.

Usage
-----
Register the resources on the Falcon app::

    app.add_route("/api/v1/discovery", DiscoveryResource(orchestrator))
    app.add_route("/api/v1/discovery/progress", DiscoveryProgressResource(orchestrator))

"""

from __future__ import annotations

import typing as typ

import falcon

from drover.api.requests import (
    StartADODiscoveryRequest,
    StartDiscoveryRequest,
    decode_body,
)
from drover.api.serializers import serialize_force_reset, to_media
from drover.discovery import DiscoveryScope
from drover.errors import BadRequestError
from drover.store import DiscoveryType

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from drover.discovery import DiscoveryOrchestrator
    from drover.store import DiscoveryProgressRecord

__all__ = [
    "ADODiscoveryResource",
    "DiscoveryCancelResource",
    "DiscoveryProgressResource",
    "DiscoveryResetResource",
    "DiscoveryResource",
]

_STARTED_MESSAGES = {
    DiscoveryType.ORGANIZATION: "Discovery started",
    DiscoveryType.ENTERPRISE: "Enterprise discovery started",
    DiscoveryType.ADO_ORGANIZATION: "ADO organization discovery started",
    DiscoveryType.ADO_PROJECT: "ADO project discovery started",
}


def _accepted(resp: Response, progress: DiscoveryProgressRecord) -> None:
    resp.status = falcon.HTTP_202
    resp.media = {
        "message": _STARTED_MESSAGES[progress.discovery_type],
        "progress_id": progress.id,
        "discovery_type": progress.discovery_type,
        "target": progress.target,
        "status": progress.status,
    }


class DiscoveryResource:
    """``POST /api/v1/discovery`` starts a GitHub organization or enterprise crawl."""

    def __init__(self, orchestrator: DiscoveryOrchestrator) -> None:
        """Configure the resource with the orchestrator."""
        self._orchestrator = orchestrator

    async def on_post(self, req: Request, resp: Response) -> None:
        """Start a discovery and respond ``202 Accepted``."""
        body = await decode_body(req, StartDiscoveryRequest)
        organization = (body.organization or "").strip()
        enterprise = (body.enterprise_slug or "").strip()
        if organization and enterprise:
            msg = "Cannot specify both organization and enterprise_slug"
            raise BadRequestError(msg)
        if not organization and not enterprise:
            msg = "Either organization or enterprise_slug is required"
            raise BadRequestError(msg, field="organization")

        scope = (
            DiscoveryScope.for_enterprise(enterprise)
            if enterprise
            else DiscoveryScope.for_organization(organization)
        )
        progress = await self._orchestrator.start_discovery(
            scope, workers=body.workers
        )
        _accepted(resp, progress)


class ADODiscoveryResource:
    """``POST /api/v1/ado/discovery`` starts an Azure DevOps crawl."""

    def __init__(self, orchestrator: DiscoveryOrchestrator) -> None:
        """Configure the resource with the orchestrator."""
        self._orchestrator = orchestrator

    async def on_post(self, req: Request, resp: Response) -> None:
        """Crawl a whole organization, or only the listed projects."""
        body = await decode_body(req, StartADODiscoveryRequest)
        scope = (
            DiscoveryScope.for_ado_projects(body.organization, body.projects)
            if body.projects
            else DiscoveryScope.for_ado_organization(body.organization)
        )
        progress = await self._orchestrator.start_discovery(
            scope, workers=body.workers
        )
        _accepted(resp, progress)


class DiscoveryProgressResource:
    """``GET /api/v1/discovery/progress`` reports the latest run."""

    def __init__(self, orchestrator: DiscoveryOrchestrator) -> None:
        """Configure the resource with the orchestrator."""
        self._orchestrator = orchestrator

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Return the active or most recent discovery."""
        progress = await self._orchestrator.get_progress()
        if progress is None:
            resp.media = {"status": "none", "message": "No discovery has been run yet"}
        else:
            resp.media = to_media(progress)
        resp.status = falcon.HTTP_200


class DiscoveryCancelResource:
    """``POST /api/v1/discovery/cancel`` asks the active run to stop."""

    def __init__(self, orchestrator: DiscoveryOrchestrator) -> None:
        """Configure the resource with the orchestrator."""
        self._orchestrator = orchestrator

    async def on_post(self, _req: Request, resp: Response) -> None:
        """Request cancellation of the active discovery."""
        result = await self._orchestrator.cancel_discovery()
        resp.media = {
            "message": "Discovery cancellation initiated",
            "progress_id": result.progress_id,
            "target": result.target,
            "status": result.status,
        }
        resp.status = falcon.HTTP_200


class DiscoveryResetResource:
    """``POST /api/v1/discovery/reset`` clears a stuck run."""

    def __init__(self, orchestrator: DiscoveryOrchestrator) -> None:
        """Configure the resource with the orchestrator."""
        self._orchestrator = orchestrator

    async def on_post(self, _req: Request, resp: Response) -> None:
        """Force-reset the active discovery; idempotent."""
        result = await self._orchestrator.force_reset_discovery()
        resp.media = serialize_force_reset(result)
        resp.status = falcon.HTTP_200
