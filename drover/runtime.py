"""Drover runtime entrypoint for container deployments.

This module provides the ASGI application factory used by Granian. It
delegates to :func:`drover.api.app.create_app` while keeping the
``drover.runtime:create_app`` entrypoint stable.

When ``DROVER_DATABASE_URL`` is set, the runtime builds the store, the
provider factories that have credentials, and every service, so the app
serves the full API. Otherwise it starts in health-only mode.

Configuration is driven by environment variables:

- ``DROVER_HOST``: Bind address (default ``0.0.0.0``)
- ``DROVER_PORT``: Listen port (default ``8080``)
- ``DROVER_LOG_LEVEL``: Log level (default ``INFO``)
- ``DROVER_DATABASE_URL``: Database connection URL (optional; enables
  the API when set)
- ``DROVER_GITHUB_TOKEN``: GitHub token (optional; enables GitHub
  discovery when set)

Run the service directly with ``python -m drover.runtime``.
"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ

from drover.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

    from drover.discovery import ProviderFactory, ProviderKind

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

# TCP port number range limits
_MIN_PORT = 1
_MAX_PORT = 65535


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If port_str is not a valid integer in range 1-65535.

    """
    try:
        port = int(port_str)
        if not (_MIN_PORT <= port <= _MAX_PORT):
            msg = f"port {port} outside valid range {_MIN_PORT}-{_MAX_PORT}"
            raise ValueError(msg)  # noqa: TRY301 - unify conversion and range errors
    except ValueError as exc:
        log_error(
            logger,
            "Invalid DROVER_PORT value: %r (must be %d-%d): %s",
            port_str,
            _MIN_PORT,
            _MAX_PORT,
            exc,
        )
        raise SystemExit(1) from exc
    return port


def _configured_providers() -> dict[ProviderKind, ProviderFactory]:
    """Return provider factories for which credentials are configured."""
    from drover.discovery import ProviderKind
    from drover.github import GitHubProviderFactory

    providers: dict[ProviderKind, ProviderFactory] = {}
    if os.environ.get("DROVER_GITHUB_TOKEN", "").strip():
        providers[ProviderKind.GITHUB] = GitHubProviderFactory.from_env()
    else:
        log_warning(logger, "DROVER_GITHUB_TOKEN not set; GitHub discovery disabled")
    return providers


def create_app() -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    from drover.api.app import create_app as _create_api_app

    database_url = os.environ.get("DROVER_DATABASE_URL")

    if database_url is None:
        return _create_api_app()

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from drover.api.factory import build_dependencies
    from drover.api.middleware import LifespanManager
    from drover.store import SqlAlchemyStore

    engine = create_async_engine(database_url)
    store = SqlAlchemyStore(async_sessionmaker(engine, expire_on_commit=False))
    deps = build_dependencies(store, _configured_providers())
    deps = dc.replace(deps, lifespan=LifespanManager(engine, deps.orchestrator))
    return _create_api_app(deps)


def main() -> None:
    """Start the Drover runtime server using Granian.

    Reads ``DROVER_HOST``, ``DROVER_PORT``, and ``DROVER_LOG_LEVEL`` from
    the environment and starts the ASGI server.
    """
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("DROVER_HOST", "0.0.0.0")  # noqa: S104 - bind all interfaces for container
    port_str = os.environ.get("DROVER_PORT", "8080")
    port = _parse_port(port_str)
    log_level_str = os.environ.get("DROVER_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid DROVER_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    log_info(
        logger,
        "Starting Drover runtime on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "drover.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
