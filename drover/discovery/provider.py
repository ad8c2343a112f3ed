"""Protocols implemented by source-control provider clients."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from drover.store import RepositoryProfile

    from .models import ProviderKind, SourceRepository


class ProviderClient(typ.Protocol):
    """Read-only access to one provider account.

    Clients returned by a :class:`ProviderFactory` are owned by the caller and
    must be closed with :meth:`aclose`.
    """

    def iter_organizations(self, enterprise: str) -> cabc.AsyncIterator[str]:
        """Yield organization logins belonging to an enterprise."""
        ...

    def iter_projects(self, organization: str) -> cabc.AsyncIterator[str]:
        """Yield project names in an organization."""
        ...

    def iter_repositories(
        self, organization: str, *, project: str | None = None
    ) -> cabc.AsyncIterator[SourceRepository]:
        """Yield repositories in an organization or project."""
        ...

    async def profile_repository(
        self, repository: SourceRepository
    ) -> RepositoryProfile:
        """Gather metadata and dependencies for one repository."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class ProviderFactory(typ.Protocol):
    """Create clients for a provider, optionally scoped to one organization."""

    kind: ProviderKind

    def client_for(self, organization: str | None = None) -> ProviderClient:
        """Return a client; ``None`` asks for an estate-level client."""
        ...
