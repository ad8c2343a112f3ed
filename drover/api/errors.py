"""Falcon error handlers for the Drover error taxonomy.

Every :class:`~drover.errors.DroverError` carries an
:class:`~drover.errors.ErrorKind`; the handler here maps the kind onto an
HTTP status and renders a ``{"title", "description"}`` JSON body.

Usage
-----
Register the handler on the Falcon app::

    from drover.api.errors import handle_drover_error
    from drover.errors import DroverError

    app.add_error_handler(DroverError, handle_drover_error)

"""

from __future__ import annotations

import typing as typ

import falcon

from drover.errors import BadRequestError, DroverError, ErrorKind
from drover.logging import get_logger, log_exception

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = ["ERROR_STATUS", "ERROR_TITLES", "handle_drover_error"]

logger = get_logger(__name__)

ERROR_STATUS: dict[ErrorKind, str] = {
    ErrorKind.CONFLICT: falcon.HTTP_409,
    ErrorKind.NOT_FOUND: falcon.HTTP_404,
    ErrorKind.BAD_REQUEST: falcon.HTTP_400,
    ErrorKind.SERVICE_UNAVAILABLE: falcon.HTTP_503,
    ErrorKind.INTERNAL: falcon.HTTP_500,
}

ERROR_TITLES: dict[ErrorKind, str] = {
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.BAD_REQUEST: "Invalid input",
    ErrorKind.SERVICE_UNAVAILABLE: "Service unavailable",
    ErrorKind.INTERNAL: "Internal error",
}


async def handle_drover_error(
    req: Request,
    resp: Response,
    ex: DroverError,
    _params: dict[str, typ.Any],
) -> None:
    """Map a ``DroverError`` to an HTTP JSON response.

    Parameters
    ----------
    req
        Falcon request, used to log the failing route.
    resp
        Falcon response whose status and media are set.
    ex
        The domain exception.
    _params
        URI template parameters (unused).

    """
    if ex.kind is ErrorKind.INTERNAL:
        log_exception(logger, f"Internal error handling {req.method} {req.path}", ex)
    resp.status = ERROR_STATUS[ex.kind]
    media: dict[str, str] = {
        "title": ERROR_TITLES[ex.kind],
        "description": ex.message,
    }
    if isinstance(ex, BadRequestError) and ex.field is not None:
        media["field"] = ex.field
    resp.media = media
