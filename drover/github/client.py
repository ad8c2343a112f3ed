"""GitHub REST and GraphQL client used to discover repositories."""

from __future__ import annotations

import base64
import binascii
import collections.abc as cabc
import dataclasses
import os
import typing as typ

import httpx
import msgspec

from drover.dependencies import (
    analyze_dependencies,
    is_manifest_file,
    is_workflow_file,
)
from drover.discovery import ProviderKind, SourceRepository
from drover.logging import get_logger, log_debug, log_warning
from drover.store import RepositoryProfile

from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .models import GitHubContentEntry, GitHubRepositoryPayload

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_NOT_FOUND = 404
_KILOBYTE = 1024

# GitHub rejects migrations of repositories larger than 40 GiB.
OVERSIZED_REPOSITORY_BYTES = 40 * 1024**3

_ENTERPRISE_ORGANIZATIONS_QUERY = """
query($slug: String!, $after: String) {
  enterprise(slug: $slug) {
    organizations(first: 100, after: $after) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        login
      }
    }
  }
}
"""


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Configuration for the GitHub API client."""

    token: str
    api_url: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "drover/0.1"
    per_page: int = 100

    @property
    def graphql_url(self) -> str:
        """Return the GraphQL endpoint matching :attr:`api_url`.

        Examples
        --------
        >>> GitHubConfig(token="t", api_url="https://ghe.example/api/v3").graphql_url
        'https://ghe.example/api/graphql'

        """
        return f"{self.api_url.rstrip('/').removesuffix('/v3')}/graphql"

    @classmethod
    def from_env(cls) -> GitHubConfig:
        """Build configuration from ``DROVER_GITHUB_TOKEN`` and friends."""
        token = os.environ.get("DROVER_GITHUB_TOKEN", "").strip()
        if not token:
            raise GitHubConfigError.missing_token()
        api_url = os.environ.get("DROVER_GITHUB_API_URL", "").strip()
        if api_url:
            return cls(token=token, api_url=api_url)
        return cls(token=token)


def _decode_content(entry: GitHubContentEntry) -> str | None:
    if entry.content is None or entry.encoding != "base64":
        return entry.content
    try:
        return base64.b64decode(entry.content).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        log_warning(logger, "Could not decode %s as UTF-8 text", entry.path)
        return None


def _parse_graphql_payload(payload_raw: object) -> dict[str, typ.Any]:
    """Validate a GraphQL response payload and return its data field."""
    if not isinstance(payload_raw, dict):
        raise GitHubResponseShapeError.missing("response")
    errors = payload_raw.get("errors")
    if errors:
        raise GitHubAPIError.graphql_errors(errors)
    data = payload_raw.get("data")
    if not isinstance(data, dict):
        raise GitHubResponseShapeError.missing("data")
    return data


def _organizations_connection(data: dict[str, typ.Any]) -> dict[str, typ.Any]:
    enterprise = data.get("enterprise")
    if not isinstance(enterprise, dict):
        raise GitHubResponseShapeError.missing("enterprise")
    connection = enterprise.get("organizations")
    if not isinstance(connection, dict):
        raise GitHubResponseShapeError.missing("enterprise.organizations")
    return connection


class GitHubClient:
    """GitHub implementation of :class:`~drover.discovery.ProviderClient`."""

    def __init__(
        self,
        config: GitHubConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if not config.token.strip():
            raise GitHubConfigError.empty_token()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout_s,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": config.user_agent,
                "Accept": "application/vnd.github+json",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def iter_organizations(self, enterprise: str) -> cabc.AsyncIterator[str]:
        """Yield the logins of organizations in an enterprise."""
        after: str | None = None
        while True:
            data = await self._graphql(
                _ENTERPRISE_ORGANIZATIONS_QUERY, {"slug": enterprise, "after": after}
            )
            connection = _organizations_connection(data)
            for node in connection.get("nodes") or []:
                if isinstance(node, dict) and isinstance(node.get("login"), str):
                    yield node["login"]

            page_info = connection.get("pageInfo")
            if not isinstance(page_info, dict) or not page_info.get("hasNextPage"):
                return
            after = page_info.get("endCursor")
            if not isinstance(after, str):
                return

    def iter_projects(self, organization: str) -> cabc.AsyncIterator[str]:
        """GitHub organizations have no projects; always raises."""
        raise GitHubAPIError.unsupported(f"projects (organization {organization})")

    async def iter_repositories(
        self, organization: str, *, project: str | None = None
    ) -> cabc.AsyncIterator[SourceRepository]:
        """Yield every repository owned by an organization."""
        if project is not None:
            raise GitHubAPIError.unsupported("project-scoped repository listing")
        url: str | None = f"/orgs/{organization}/repos"
        params: dict[str, str | int] | None = {
            "type": "all",
            "per_page": self._config.per_page,
        }
        while url is not None:
            response = await self._get(url, params=params)
            payloads = msgspec.convert(
                response.json(), type=list[GitHubRepositoryPayload]
            )
            for payload in payloads:
                yield SourceRepository(
                    organization=organization,
                    name=payload.name,
                    source_url=payload.html_url,
                )
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string.
            params = None

    async def profile_repository(
        self, repository: SourceRepository
    ) -> RepositoryProfile:
        """Fetch metadata and dependency files for one repository."""
        full_name = repository.full_name
        response = await self._get(f"/repos/{full_name}")
        payload = msgspec.convert(response.json(), type=GitHubRepositoryPayload)

        gitmodules = await self._read_file(full_name, ".gitmodules")
        gitattributes = await self._read_file(full_name, ".gitattributes")
        workflows = await self._read_workflows(full_name)
        manifests = await self._read_manifests(full_name)
        dependencies = analyze_dependencies(
            gitmodules=gitmodules,
            workflows=workflows,
            manifests=manifests,
            repository=full_name,
        )
        total_size = payload.size * _KILOBYTE
        log_debug(logger, "Profiled %s (%d bytes)", full_name, total_size)
        return RepositoryProfile(
            full_name=payload.full_name,
            source=ProviderKind.GITHUB,
            source_url=payload.html_url or repository.source_url,
            default_branch=payload.default_branch,
            total_size=total_size,
            visibility=payload.visibility
            or ("private" if payload.private else "public"),
            is_archived=payload.archived,
            has_lfs=gitattributes is not None and "filter=lfs" in gitattributes,
            has_submodules=bool(gitmodules and "[submodule " in gitmodules),
            has_oversized_repository=total_size > OVERSIZED_REPOSITORY_BYTES,
            dependencies=dependencies,
        )

    async def _read_workflows(self, full_name: str) -> dict[str, str]:
        entries = await self._contents(full_name, ".github/workflows")
        if not isinstance(entries, list):
            return {}
        workflows: dict[str, str] = {}
        for entry in entries:
            if entry.type != "file" or not is_workflow_file(entry.path):
                continue
            content = await self._read_file(full_name, entry.path)
            if content is not None:
                workflows[entry.name] = content
        return workflows

    async def _read_manifests(self, full_name: str) -> dict[str, str]:
        """Return package manifests found at the repository root."""
        entries = await self._contents(full_name, "")
        if not isinstance(entries, list):
            return {}
        manifests: dict[str, str] = {}
        for entry in entries:
            if entry.type != "file" or not is_manifest_file(entry.path):
                continue
            content = await self._read_file(full_name, entry.path)
            if content is not None:
                manifests[entry.path] = content
        return manifests

    async def _read_file(self, full_name: str, path: str) -> str | None:
        entry = await self._contents(full_name, path)
        if not isinstance(entry, GitHubContentEntry) or entry.type != "file":
            return None
        return _decode_content(entry)

    async def _contents(
        self, full_name: str, path: str
    ) -> GitHubContentEntry | list[GitHubContentEntry] | None:
        """Return a file or directory listing, or ``None`` when absent."""
        url = f"/repos/{full_name}/contents"
        if path:
            url = f"{url}/{path}"
        response = await self._get(url, allow_not_found=True)
        if response.status_code == _HTTP_NOT_FOUND:
            return None
        body = response.json()
        if isinstance(body, list):
            return msgspec.convert(body, type=list[GitHubContentEntry])
        return msgspec.convert(body, type=GitHubContentEntry)

    async def _get(
        self,
        url: str,
        *,
        params: cabc.Mapping[str, str | int] | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        response = await self._client.get(url, params=params)
        if allow_not_found and response.status_code == _HTTP_NOT_FOUND:
            return response
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code, url)
        return response

    async def _graphql(
        self, query: str, variables: dict[str, typ.Any]
    ) -> dict[str, typ.Any]:
        response = await self._client.post(
            self._config.graphql_url,
            json={"query": query, "variables": variables},
        )
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code, "graphql")
        return _parse_graphql_payload(response.json())


class GitHubProviderFactory:
    """Create :class:`GitHubClient` instances, one per organization.

    Organizations listed in ``organization_tokens`` get a client using their
    own token; every other organization uses the default configuration.
    """

    kind = ProviderKind.GITHUB

    def __init__(
        self,
        config: GitHubConfig,
        *,
        organization_tokens: cabc.Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Store the configuration used for new clients."""
        self._config = config
        self._organization_tokens = dict(organization_tokens or {})
        self._transport = transport

    @classmethod
    def from_env(cls) -> GitHubProviderFactory:
        """Build a factory from ``DROVER_GITHUB_*`` environment variables."""
        return cls(GitHubConfig.from_env())

    def client_for(self, organization: str | None = None) -> GitHubClient:
        """Return a new client for ``organization`` or the enterprise."""
        config = self._config
        token = self._organization_tokens.get(organization or "")
        if token:
            config = dataclasses.replace(config, token=token)
        return GitHubClient(config, transport=self._transport)
