"""Query the estate's local dependency graph.

Only local edges (targets that are themselves discovered repositories) take
part in the graph. Circular dependency detection is limited to direct
two-repository cycles such as ``A -> B -> A``; longer cycles are not
reported.
"""

from __future__ import annotations

import collections
import typing as typ

from drover.common.names import organization_of
from drover.errors import NotFoundError

from .models import (
    UNKNOWN_STATUS,
    DependencyGraph,
    DependencySummary,
    Dependent,
    Direction,
    ExportRow,
    GraphEdge,
    GraphNode,
    GraphStats,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from drover.store import DependencyPair, DependencyRecord, Store


def pair_key(first: str, second: str) -> tuple[str, str]:
    """Return an unordered pair with the lexicographically smaller name first.

    Examples
    --------
    >>> pair_key("acme/web", "acme/api")
    ('acme/api', 'acme/web')

    """
    return (first, second) if first < second else (second, first)


def detect_circular_pairs(
    edges: cabc.Iterable[DependencyPair | GraphEdge],
) -> list[tuple[str, str]]:
    """Return each pair of repositories that depend on each other directly.

    A pair is reported once however many dependency types connect the two
    repositories and whichever direction is seen first. The result is
    sorted.
    """
    seen: set[tuple[str, str]] = set()
    pairs: set[tuple[str, str]] = set()
    for edge in edges:
        source, target = _endpoints(edge)
        if (target, source) in seen:
            pairs.add(pair_key(source, target))
        seen.add((source, target))
    return sorted(pairs)


def _endpoints(edge: DependencyPair | GraphEdge) -> tuple[str, str]:
    if isinstance(edge, GraphEdge):
        return edge.source, edge.target
    return edge.source_repo, edge.target_repo


def summarize_dependencies(
    dependencies: cabc.Iterable[DependencyRecord],
) -> DependencySummary:
    """Count dependencies by locality and type."""
    total = local = 0
    by_type: collections.Counter[str] = collections.Counter()
    for dependency in dependencies:
        total += 1
        if dependency.is_local:
            local += 1
        by_type[dependency.dependency_type] += 1
    return DependencySummary(
        total=total, local=local, external=total - local, by_type=dict(by_type)
    )


class DependencyGraphEngine:
    """Read dependency edges and repository state to answer graph queries."""

    def __init__(self, store: Store) -> None:
        """Create an engine reading from ``store``."""
        self._store = store

    async def build_graph(
        self, dependency_types: cabc.Sequence[str] | None = None
    ) -> DependencyGraph:
        """Build the local dependency graph, optionally for some types only.

        Nodes are resolved against known repositories for their status and
        organization. A node naming an unknown repository has status
        ``unknown`` and takes its organization from the first path segment.
        """
        pairs = await self._store.list_local_dependency_pairs(dependency_types)

        depends_on: collections.Counter[str] = collections.Counter()
        depended_by: collections.Counter[str] = collections.Counter()
        names: set[str] = set()
        for pair in pairs:
            depends_on[pair.source_repo] += 1
            depended_by[pair.target_repo] += 1
            names.update((pair.source_repo, pair.target_repo))

        known = {
            repository.full_name: repository
            for repository in await self._store.get_repositories(sorted(names))
        }
        nodes = []
        for name in sorted(names):
            repository = known.get(name)
            nodes.append(
                GraphNode(
                    id=name,
                    full_name=name,
                    organization=organization_of(name),
                    status=str(repository.status) if repository else UNKNOWN_STATUS,
                    depends_on_count=depends_on[name],
                    depended_by_count=depended_by[name],
                )
            )

        edges = [
            GraphEdge(
                source=pair.source_repo,
                target=pair.target_repo,
                dependency_type=pair.dependency_type,
            )
            for pair in pairs
        ]
        return DependencyGraph(
            nodes=nodes,
            edges=edges,
            stats=GraphStats(
                total_repos_with_dependencies=len(names),
                total_local_dependencies=len(edges),
                circular_dependency_count=len(detect_circular_pairs(pairs)),
            ),
        )

    async def repository_dependencies(
        self, full_name: str
    ) -> tuple[list[DependencyRecord], DependencySummary]:
        """Return a repository's outgoing dependencies and their summary.

        Raises
        ------
        NotFoundError
            If the repository is unknown.

        """
        repository = await self._store.get_repository(full_name)
        if repository is None:
            raise NotFoundError.repository(full_name)
        dependencies = await self._store.list_dependencies(repository.id)
        return dependencies, summarize_dependencies(dependencies)

    async def dependents(self, full_name: str) -> list[Dependent]:
        """Return repositories that depend on ``full_name``.

        Each dependent lists the distinct dependency types connecting it to
        the target, in the order they were found.

        Raises
        ------
        NotFoundError
            If the target repository is unknown.

        """
        if await self._store.get_repository(full_name) is None:
            raise NotFoundError.repository(full_name)

        result: list[Dependent] = []
        for repository in await self._store.list_dependents(full_name):
            types = list(
                dict.fromkeys(
                    dependency.dependency_type
                    for dependency in await self._store.list_dependencies(
                        repository.id
                    )
                    if dependency.dependency_full_name == full_name
                )
            )
            if not types:
                continue
            result.append(
                Dependent(
                    id=repository.id,
                    full_name=repository.full_name,
                    status=str(repository.status),
                    dependency_types=types,
                    source_url=repository.source_url,
                )
            )
        return result

    async def export_rows(
        self, dependency_types: cabc.Sequence[str] | None = None
    ) -> list[ExportRow]:
        """Return estate-wide export rows, one per edge per direction.

        All ``depends_on`` rows come first, followed by the matching
        ``depended_by`` rows, whose URL is the dependent repository's URL.
        """
        pairs = await self._store.list_local_dependency_pairs(dependency_types)
        rows = [
            ExportRow(
                repository=pair.source_repo,
                dependency_full_name=pair.target_repo,
                direction=Direction.DEPENDS_ON,
                dependency_type=pair.dependency_type,
                dependency_url=pair.dependency_url or "",
            )
            for pair in pairs
        ]
        rows.extend(
            ExportRow(
                repository=pair.target_repo,
                dependency_full_name=pair.source_repo,
                direction=Direction.DEPENDED_BY,
                dependency_type=pair.dependency_type,
                dependency_url=pair.source_repo_url or "",
            )
            for pair in pairs
        )
        return rows

    async def repository_export_rows(self, full_name: str) -> list[ExportRow]:
        """Return a repository's own local outgoing and incoming edges.

        Raises
        ------
        NotFoundError
            If the repository is unknown.

        """
        repository = await self._store.get_repository(full_name)
        if repository is None:
            raise NotFoundError.repository(full_name)

        rows = [
            ExportRow(
                repository=full_name,
                dependency_full_name=dependency.dependency_full_name,
                direction=Direction.DEPENDS_ON,
                dependency_type=dependency.dependency_type,
                dependency_url=dependency.dependency_url or "",
            )
            for dependency in await self._store.list_dependencies(repository.id)
            if dependency.is_local
        ]
        for dependent in await self._store.list_dependents(full_name):
            rows.extend(
                ExportRow(
                    repository=full_name,
                    dependency_full_name=dependent.full_name,
                    direction=Direction.DEPENDED_BY,
                    dependency_type=dependency.dependency_type,
                    dependency_url=dependent.source_url or "",
                )
                for dependency in await self._store.list_dependencies(dependent.id)
                if dependency.dependency_full_name == full_name and dependency.is_local
            )
        return rows
