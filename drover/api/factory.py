"""Assemble the services behind the API from a store and providers.

Usage
-----
Build dependencies for the API layer::

    from drover.api.factory import build_dependencies

    deps = build_dependencies(store, {ProviderKind.GITHUB: github_factory})

"""

from __future__ import annotations

import typing as typ

from drover.api.app import AppDependencies
from drover.batches import BatchLifecycleService
from drover.config import DroverConfig
from drover.dependencies import DependencyGraphEngine
from drover.discovery import DiscoveryOrchestrator
from drover.lifecycle import RepositoryLifecycleService

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from drover.discovery import ProviderFactory, ProviderKind
    from drover.store import Store

__all__ = ["build_dependencies"]


def build_dependencies(
    store: Store,
    providers: cabc.Mapping[ProviderKind, ProviderFactory] | None = None,
    *,
    config: DroverConfig | None = None,
) -> AppDependencies:
    """Build every service over one store.

    Parameters
    ----------
    store
        Persistence shared by all services.
    providers
        Provider factories keyed by platform. Scopes on a platform with no
        factory are rejected as service unavailable.
    config
        Orchestrator tunables; read from the environment when omitted.

    """
    lifecycle = RepositoryLifecycleService(store)
    return AppDependencies(
        orchestrator=DiscoveryOrchestrator(
            store, providers or {}, config=config or DroverConfig.from_env()
        ),
        lifecycle=lifecycle,
        batches=BatchLifecycleService(store, lifecycle),
        graph=DependencyGraphEngine(store),
    )
