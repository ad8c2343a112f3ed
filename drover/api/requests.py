"""Typed request bodies and the helper that decodes them."""

from __future__ import annotations

import typing as typ

import msgspec

from drover.errors import BadRequestError

if typ.TYPE_CHECKING:
    from falcon.asgi import Request

    T = typ.TypeVar("T")

__all__ = [
    "AddRepositoriesRequest",
    "BatchStatusRequest",
    "CreateBatchRequest",
    "DestinationRequest",
    "RetryRequest",
    "RollbackRequest",
    "StartADODiscoveryRequest",
    "StartBatchRequest",
    "StartDiscoveryRequest",
    "StartMigrationRequest",
    "decode_body",
]


class StartDiscoveryRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/discovery``."""

    organization: str | None = None
    enterprise_slug: str | None = None
    workers: int | None = None


class StartADODiscoveryRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/ado/discovery``."""

    organization: str = ""
    projects: list[str] = msgspec.field(default_factory=list)
    workers: int | None = None


class StartMigrationRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/migrations``."""

    full_names: list[str] = msgspec.field(default_factory=list)
    dry_run: bool = False
    priority: int = 0
    initiated_by: str | None = None


class BatchStatusRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/repositories/status``."""

    full_names: list[str] = msgspec.field(default_factory=list)
    action: str = ""
    reason: str | None = None
    initiated_by: str | None = None


class RollbackRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/repositories/rollback``."""

    full_name: str = ""
    reason: str | None = None
    initiated_by: str | None = None


class CreateBatchRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/batches``."""

    name: str = ""
    type: str = "wave"
    destination_org: str | None = None
    description: str | None = None


class AddRepositoriesRequest(msgspec.Struct, kw_only=True):
    """Body of the batch membership endpoints."""

    repository_ids: list[int] = msgspec.field(default_factory=list)


class StartBatchRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/batches/{id}/start``."""

    dry_run: bool = False
    initiated_by: str | None = None


class RetryRequest(msgspec.Struct, kw_only=True):
    """Body of ``POST /api/v1/batches/{id}/retry``."""

    repository_ids: list[int] | None = None
    initiated_by: str | None = None


class DestinationRequest(msgspec.Struct, kw_only=True):
    """Body of ``PATCH /api/v1/batches/{id}/destination``."""

    destination_org: str | None = None


async def decode_body(req: Request, body_type: type[T]) -> T:
    """Decode the JSON request body into ``body_type``.

    An empty body decodes as ``{}`` so bodies whose fields all have
    defaults may be omitted.

    Raises
    ------
    BadRequestError
        If the body does not match ``body_type``.

    """
    media = await req.get_media(default_when_empty={})
    try:
        return msgspec.convert(media, type=body_type)
    except msgspec.ValidationError as exc:
        msg = f"invalid request body: {exc}"
        raise BadRequestError(msg) from exc
