"""Resources for creating, filling and starting migration batches."""

from __future__ import annotations

import typing as typ

import falcon

from drover.api.repositories.resources import OUTCOME_STATUS
from drover.api.requests import (
    AddRepositoriesRequest,
    CreateBatchRequest,
    DestinationRequest,
    RetryRequest,
    StartBatchRequest,
    decode_body,
)
from drover.api.serializers import (
    serialize_destination,
    serialize_membership,
    serialize_retry,
    serialize_start_batch,
    to_media,
)
from drover.errors import BadRequestError

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from drover.batches import BatchLifecycleService

__all__ = [
    "BatchCollectionResource",
    "BatchDestinationResource",
    "BatchMembersResource",
    "BatchRemoveMembersResource",
    "BatchResource",
    "BatchRetryResource",
    "BatchStartResource",
]


class _BatchResourceBase:
    def __init__(self, batches: BatchLifecycleService) -> None:
        """Configure the resource with the batch service."""
        self._batches = batches


class BatchCollectionResource(_BatchResourceBase):
    """``POST /api/v1/batches`` creates a batch."""

    async def on_post(self, req: Request, resp: Response) -> None:
        """Create a ``ready`` batch and respond ``201 Created``."""
        body = await decode_body(req, CreateBatchRequest)
        batch = await self._batches.create_batch(
            body.name,
            batch_type=body.type,
            destination_org=body.destination_org,
            description=body.description,
        )
        resp.media = to_media(batch)
        resp.status = falcon.HTTP_201


class BatchResource(_BatchResourceBase):
    """``GET /api/v1/batches/{batch_id}`` returns one batch."""

    async def on_get(self, _req: Request, resp: Response, *, batch_id: int) -> None:
        """Return the batch or 404."""
        resp.media = to_media(await self._batches.get_batch(batch_id))
        resp.status = falcon.HTTP_200


class BatchMembersResource(_BatchResourceBase):
    """``POST /api/v1/batches/{batch_id}/repositories`` adds members."""

    async def on_post(self, req: Request, resp: Response, *, batch_id: int) -> None:
        """Add eligible repositories; ineligible ones are reported."""
        body = await decode_body(req, AddRepositoriesRequest)
        if not body.repository_ids:
            raise BadRequestError.missing_field("repository_ids")
        result = await self._batches.add_repositories(batch_id, body.repository_ids)
        resp.media = serialize_membership(result)
        resp.status = OUTCOME_STATUS[result.outcome]


class BatchRemoveMembersResource(_BatchResourceBase):
    """``POST /api/v1/batches/{batch_id}/repositories/remove`` removes members."""

    async def on_post(self, req: Request, resp: Response, *, batch_id: int) -> None:
        """Detach repositories from the batch."""
        body = await decode_body(req, AddRepositoriesRequest)
        if not body.repository_ids:
            raise BadRequestError.missing_field("repository_ids")
        result = await self._batches.remove_repositories(batch_id, body.repository_ids)
        resp.media = serialize_membership(result)
        resp.status = OUTCOME_STATUS[result.outcome]


class BatchStartResource(_BatchResourceBase):
    """``POST /api/v1/batches/{batch_id}/start`` queues every member."""

    async def on_post(self, req: Request, resp: Response, *, batch_id: int) -> None:
        """Start the batch and respond ``202 Accepted``."""
        body = await decode_body(req, StartBatchRequest)
        result = await self._batches.start_batch(
            batch_id, dry_run=body.dry_run, initiated_by=body.initiated_by
        )
        resp.media = serialize_start_batch(result)
        resp.status = falcon.HTTP_202


class BatchRetryResource(_BatchResourceBase):
    """``POST /api/v1/batches/{batch_id}/retry`` re-queues failed members."""

    async def on_post(self, req: Request, resp: Response, *, batch_id: int) -> None:
        """Retry all failed members, or only the listed ones."""
        body = await decode_body(req, RetryRequest)
        result = await self._batches.retry_batch_failures(
            batch_id, body.repository_ids, initiated_by=body.initiated_by
        )
        resp.media = serialize_retry(result)
        resp.status = falcon.HTTP_200


class BatchDestinationResource(_BatchResourceBase):
    """``PATCH /api/v1/batches/{batch_id}/destination`` changes the default org."""

    async def on_patch(self, req: Request, resp: Response, *, batch_id: int) -> None:
        """Rewrite batch-default destinations to the new organization."""
        body = await decode_body(req, DestinationRequest)
        result = await self._batches.update_destination_org(
            batch_id, body.destination_org
        )
        resp.media = serialize_destination(result)
        resp.status = falcon.HTTP_200
