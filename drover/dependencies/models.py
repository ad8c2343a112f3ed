"""Result types for dependency graph queries and exports."""

from __future__ import annotations

import enum

import msgspec

UNKNOWN_STATUS = "unknown"


class ExportFormat(enum.StrEnum):
    """Serialisations supported by dependency exports."""

    CSV = "csv"
    JSON = "json"


class Direction(enum.StrEnum):
    """Which way an export row points relative to its repository."""

    DEPENDS_ON = "depends_on"
    DEPENDED_BY = "depended_by"


class GraphNode(msgspec.Struct, kw_only=True, frozen=True):
    """A repository taking part in at least one local dependency edge."""

    id: str
    full_name: str
    organization: str
    status: str
    depends_on_count: int = 0
    depended_by_count: int = 0


class GraphEdge(msgspec.Struct, kw_only=True, frozen=True):
    """A directed edge meaning ``source`` depends on ``target``."""

    source: str
    target: str
    dependency_type: str


class GraphStats(msgspec.Struct, kw_only=True, frozen=True):
    """Aggregate counts for a dependency graph."""

    total_repos_with_dependencies: int
    total_local_dependencies: int
    circular_dependency_count: int


class DependencyGraph(msgspec.Struct, kw_only=True, frozen=True):
    """Nodes, edges and statistics for the estate's local dependencies."""

    nodes: list[GraphNode]
    edges: list[GraphEdge]
    stats: GraphStats


class DependencySummary(msgspec.Struct, kw_only=True, frozen=True):
    """Counts of one repository's outgoing dependencies."""

    total: int = 0
    local: int = 0
    external: int = 0
    by_type: dict[str, int] = msgspec.field(default_factory=dict)


class Dependent(msgspec.Struct, kw_only=True, frozen=True):
    """A repository that depends on a given target."""

    id: int
    full_name: str
    status: str
    dependency_types: list[str]
    source_url: str | None = None


class ExportRow(msgspec.Struct, kw_only=True, frozen=True):
    """One row of a dependency export."""

    repository: str
    dependency_full_name: str
    direction: str
    dependency_type: str
    dependency_url: str = ""


EXPORT_COLUMNS: tuple[str, ...] = (
    "repository",
    "dependency_full_name",
    "direction",
    "dependency_type",
    "dependency_url",
)
