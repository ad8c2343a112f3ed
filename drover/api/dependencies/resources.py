"""Resources exposing the local dependency graph.

Repository full names contain ``/`` so they are taken from a trailing
``{full_name:path}`` segment.
"""

from __future__ import annotations

import typing as typ

import falcon

from drover.api.serializers import to_media
from drover.dependencies import export_dependencies

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from drover.dependencies import DependencyGraphEngine

__all__ = [
    "DependencyExportResource",
    "DependencyGraphResource",
    "RepositoryDependenciesResource",
    "RepositoryDependentsResource",
]


def _dependency_types(req: Request) -> list[str] | None:
    raw = req.get_param("dependency_type")
    if not raw:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()] or None


class DependencyGraphResource:
    """``GET /api/v1/dependencies/graph`` returns nodes, edges and stats."""

    def __init__(self, engine: DependencyGraphEngine) -> None:
        """Configure the resource with the graph engine."""
        self._engine = engine

    async def on_get(self, req: Request, resp: Response) -> None:
        """Build the graph, optionally filtered by ``dependency_type``."""
        graph = await self._engine.build_graph(_dependency_types(req))
        resp.media = to_media(graph)
        resp.status = falcon.HTTP_200


class DependencyExportResource:
    """``GET /api/v1/dependencies/export`` downloads edges as CSV or JSON.

    With a ``repository`` parameter only that repository's own edges are
    exported.
    """

    def __init__(self, engine: DependencyGraphEngine) -> None:
        """Configure the resource with the graph engine."""
        self._engine = engine

    async def on_get(self, req: Request, resp: Response) -> None:
        """Render the export as an attachment."""
        export = await export_dependencies(
            self._engine,
            req.get_param("format"),
            repository=req.get_param("repository"),
            dependency_types=_dependency_types(req),
        )
        resp.data = export.content
        resp.content_type = export.media_type
        resp.downloadable_as = export.filename
        resp.status = falcon.HTTP_200


class RepositoryDependenciesResource:
    """``GET /api/v1/dependencies/repositories/{full_name}`` lists outgoing edges."""

    def __init__(self, engine: DependencyGraphEngine) -> None:
        """Configure the resource with the graph engine."""
        self._engine = engine

    async def on_get(self, _req: Request, resp: Response, *, full_name: str) -> None:
        """Return the repository's dependencies and a summary."""
        dependencies, summary = await self._engine.repository_dependencies(full_name)
        resp.media = {
            "dependencies": to_media(dependencies),
            "summary": to_media(summary),
        }
        resp.status = falcon.HTTP_200


class RepositoryDependentsResource:
    """``GET /api/v1/dependents/{full_name}`` lists repositories that depend on one."""

    def __init__(self, engine: DependencyGraphEngine) -> None:
        """Configure the resource with the graph engine."""
        self._engine = engine

    async def on_get(self, _req: Request, resp: Response, *, full_name: str) -> None:
        """Return the dependents of the repository."""
        dependents = await self._engine.dependents(full_name)
        resp.media = {
            "target": full_name,
            "total": len(dependents),
            "dependents": to_media(dependents),
        }
        resp.status = falcon.HTTP_200
