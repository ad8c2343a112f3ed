"""Resources that drive repositories through their migration lifecycle.

Bulk endpoints answer ``200`` when every repository succeeded, ``207``
when only some did, and ``422`` when none did; the body always lists the
per-repository outcome.
"""

from __future__ import annotations

import typing as typ

import falcon

from drover.api.requests import (
    BatchStatusRequest,
    RollbackRequest,
    StartMigrationRequest,
    decode_body,
)
from drover.api.serializers import (
    serialize_bulk_result,
    serialize_queue_result,
    to_media,
)
from drover.errors import BadRequestError
from drover.lifecycle import BulkOutcome

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from drover.lifecycle import RepositoryLifecycleService

__all__ = [
    "MigrationResource",
    "RepositoryStatusResource",
    "RollbackResource",
]

OUTCOME_STATUS: dict[BulkOutcome, str] = {
    BulkOutcome.SUCCEEDED: falcon.HTTP_200,
    BulkOutcome.PARTIAL: falcon.HTTP_207,
    BulkOutcome.FAILED: falcon.HTTP_422,
}


class MigrationResource:
    """``POST /api/v1/migrations`` queues dry runs or migrations."""

    def __init__(self, lifecycle: RepositoryLifecycleService) -> None:
        """Configure the resource with the lifecycle service."""
        self._lifecycle = lifecycle

    async def on_post(self, req: Request, resp: Response) -> None:
        """Queue the named repositories and respond ``202 Accepted``."""
        body = await decode_body(req, StartMigrationRequest)
        result = await self._lifecycle.start_migration(
            body.full_names,
            dry_run=body.dry_run,
            priority=body.priority,
            initiated_by=body.initiated_by,
        )
        resp.media = serialize_queue_result(result)
        resp.status = falcon.HTTP_202


class RepositoryStatusResource:
    """``POST /api/v1/repositories/status`` applies a bulk status action."""

    def __init__(self, lifecycle: RepositoryLifecycleService) -> None:
        """Configure the resource with the lifecycle service."""
        self._lifecycle = lifecycle

    async def on_post(self, req: Request, resp: Response) -> None:
        """Apply the action to each repository independently."""
        body = await decode_body(req, BatchStatusRequest)
        if not body.action:
            raise BadRequestError.missing_field("action")
        result = await self._lifecycle.batch_update_status(
            body.full_names,
            body.action,
            reason=body.reason,
            initiated_by=body.initiated_by,
        )
        resp.media = serialize_bulk_result(result)
        resp.status = OUTCOME_STATUS[result.outcome]


class RollbackResource:
    """``POST /api/v1/repositories/rollback`` rolls back one migration."""

    def __init__(self, lifecycle: RepositoryLifecycleService) -> None:
        """Configure the resource with the lifecycle service."""
        self._lifecycle = lifecycle

    async def on_post(self, req: Request, resp: Response) -> None:
        """Roll back a completed migration."""
        body = await decode_body(req, RollbackRequest)
        if not body.full_name.strip():
            raise BadRequestError.missing_field("full_name")
        repository = await self._lifecycle.rollback(
            body.full_name.strip(),
            reason=body.reason,
            initiated_by=body.initiated_by,
        )
        resp.media = {
            "message": "Repository rolled back successfully",
            "repository": to_media(repository),
        }
        resp.status = falcon.HTTP_200
