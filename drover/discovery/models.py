"""Scopes and results for discovery runs."""

from __future__ import annotations

import dataclasses as dc
import enum

from drover.errors import BadRequestError
from drover.store import DiscoveryProgressRecord, DiscoveryType


class ProviderKind(enum.StrEnum):
    """Source control platforms that can be crawled."""

    GITHUB = "github"
    AZURE_DEVOPS = "azure_devops"


_PROVIDER_BY_TYPE: dict[DiscoveryType, ProviderKind] = {
    DiscoveryType.ORGANIZATION: ProviderKind.GITHUB,
    DiscoveryType.ENTERPRISE: ProviderKind.GITHUB,
    DiscoveryType.ADO_ORGANIZATION: ProviderKind.AZURE_DEVOPS,
    DiscoveryType.ADO_PROJECT: ProviderKind.AZURE_DEVOPS,
}


@dc.dataclass(frozen=True, slots=True)
class DiscoveryScope:
    """What a discovery run should crawl.

    ``name`` is the organization, enterprise slug, or Azure DevOps
    organization. ``projects`` is only used by ``ado_project`` scopes.

    Examples
    --------
    >>> DiscoveryScope.for_ado_projects("contoso", ["web", "api"]).target
    'contoso/web,api'

    """

    discovery_type: DiscoveryType
    name: str
    projects: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Reject scopes that cannot be crawled."""
        if not self.name.strip():
            field = (
                "enterprise"
                if self.discovery_type is DiscoveryType.ENTERPRISE
                else "organization"
            )
            raise BadRequestError.missing_field(field)
        if self.discovery_type is DiscoveryType.ADO_PROJECT and not self.projects:
            raise BadRequestError.missing_field("projects")

    @classmethod
    def for_organization(cls, organization: str) -> DiscoveryScope:
        """Crawl a single GitHub organization."""
        return cls(DiscoveryType.ORGANIZATION, organization)

    @classmethod
    def for_enterprise(cls, enterprise: str) -> DiscoveryScope:
        """Crawl every organization in a GitHub enterprise."""
        return cls(DiscoveryType.ENTERPRISE, enterprise)

    @classmethod
    def for_ado_organization(cls, organization: str) -> DiscoveryScope:
        """Crawl every project in an Azure DevOps organization."""
        return cls(DiscoveryType.ADO_ORGANIZATION, organization)

    @classmethod
    def for_ado_projects(
        cls, organization: str, projects: list[str] | tuple[str, ...]
    ) -> DiscoveryScope:
        """Crawl selected projects in an Azure DevOps organization."""
        cleaned = tuple(project.strip() for project in projects if project.strip())
        return cls(DiscoveryType.ADO_PROJECT, organization, cleaned)

    @property
    def provider(self) -> ProviderKind:
        """Return the platform this scope is crawled on."""
        return _PROVIDER_BY_TYPE[self.discovery_type]

    @property
    def target(self) -> str:
        """Return the label recorded on the progress record."""
        if self.discovery_type is DiscoveryType.ADO_PROJECT:
            return f"{self.name}/{','.join(self.projects)}"
        return self.name

    @property
    def total_orgs(self) -> int:
        """Return the number of sub-units known before listing starts."""
        if self.discovery_type is DiscoveryType.ORGANIZATION:
            return 1
        if self.discovery_type is DiscoveryType.ADO_PROJECT:
            return len(self.projects)
        return 0


@dc.dataclass(frozen=True, slots=True)
class SourceRepository:
    """A repository as listed by a provider, before profiling."""

    organization: str
    name: str
    project: str | None = None
    source_url: str | None = None

    @property
    def full_name(self) -> str:
        """Return the canonical ``org/repo`` or ``org/project/repo`` name."""
        if self.project:
            return f"{self.organization}/{self.project}/{self.name}"
        return f"{self.organization}/{self.name}"


@dc.dataclass(frozen=True, slots=True)
class CancelResult:
    """Acknowledgement that a running discovery was asked to stop."""

    progress_id: int
    target: str
    status: str = "cancelling"


@dc.dataclass(frozen=True, slots=True)
class ForceResetResult:
    """Outcome of an operator-initiated reset of a stuck discovery."""

    action_taken: bool
    records_reset: int
    message: str
    discovery: DiscoveryProgressRecord | None = None


@dc.dataclass(slots=True)
class UnitResult:
    """Counters for one organization or project."""

    unit: str
    repositories: int = 0
    failed: int = 0
