"""In-process provider fakes for discovery tests."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from drover.discovery import ProviderError, ProviderKind, SourceRepository
from drover.store import RepositoryProfile

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from drover.store import DependencyRef


@dataclasses.dataclass(slots=True)
class FakeEstate:
    """Repositories, projects and failures shared by every fake client."""

    repositories: dict[str, list[str]] = dataclasses.field(default_factory=dict)
    organizations: dict[str, list[str]] = dataclasses.field(default_factory=dict)
    projects: dict[str, list[str]] = dataclasses.field(default_factory=dict)
    dependencies: dict[str, tuple[DependencyRef, ...]] = dataclasses.field(
        default_factory=dict
    )
    failing_units: set[str] = dataclasses.field(default_factory=set)
    failing_repositories: set[str] = dataclasses.field(default_factory=set)
    gate: asyncio.Event | None = None
    profiled: list[str] = dataclasses.field(default_factory=list)
    closed_clients: int = 0


class FakeProviderClient:
    """Serve listings and profiles from a :class:`FakeEstate`."""

    def __init__(self, estate: FakeEstate, organization: str | None) -> None:
        self._estate = estate
        self.organization = organization

    async def iter_organizations(self, enterprise: str) -> cabc.AsyncIterator[str]:
        for organization in self._estate.organizations.get(enterprise, []):
            yield organization

    async def iter_projects(self, organization: str) -> cabc.AsyncIterator[str]:
        for project in self._estate.projects.get(organization, []):
            yield project

    async def iter_repositories(
        self, organization: str, *, project: str | None = None
    ) -> cabc.AsyncIterator[SourceRepository]:
        unit = f"{organization}/{project}" if project else organization
        if self._estate.gate is not None:
            await self._estate.gate.wait()
        if unit in self._estate.failing_units:
            msg = f"listing failed for {unit}"
            raise ProviderError(msg, status_code=502)
        for name in self._estate.repositories.get(unit, []):
            yield SourceRepository(
                organization=organization, name=name, project=project
            )

    async def profile_repository(
        self, repository: SourceRepository
    ) -> RepositoryProfile:
        if repository.full_name in self._estate.failing_repositories:
            msg = f"profile failed for {repository.full_name}"
            raise ProviderError(msg, status_code=404)
        self._estate.profiled.append(repository.full_name)
        return RepositoryProfile(
            full_name=repository.full_name,
            source="github" if repository.project is None else "azuredevops",
            ado_project=repository.project,
            dependencies=self._estate.dependencies.get(repository.full_name, ()),
        )

    async def aclose(self) -> None:
        self._estate.closed_clients += 1


class FakeProviderFactory:
    """Mint :class:`FakeProviderClient` instances over one estate."""

    def __init__(
        self, estate: FakeEstate, kind: ProviderKind = ProviderKind.GITHUB
    ) -> None:
        self.kind = kind
        self.estate = estate
        self.requested: list[str | None] = []

    def client_for(self, organization: str | None = None) -> FakeProviderClient:
        self.requested.append(organization)
        return FakeProviderClient(self.estate, organization)
