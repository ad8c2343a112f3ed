"""Cross-repository dependency analysis and reporting.

Usage
-----
Build the local dependency graph and export it as CSV::

    from drover.dependencies import DependencyGraphEngine, export_dependencies

    engine = DependencyGraphEngine(store)
    graph = await engine.build_graph()
    export = await export_dependencies(engine, "csv")

"""

from drover.dependencies.analyzer import (
    Submodule,
    WorkflowReference,
    analyze_dependencies,
    is_repository_reference,
    is_workflow_file,
    parse_gitmodules,
    parse_uses,
    parse_workflow,
    repository_from_url,
)
from drover.dependencies.export import (
    DependencyExport,
    export_dependencies,
    parse_format,
    render_csv,
    render_export,
)
from drover.dependencies.graph import (
    DependencyGraphEngine,
    detect_circular_pairs,
    pair_key,
    summarize_dependencies,
)
from drover.dependencies.models import (
    EXPORT_COLUMNS,
    UNKNOWN_STATUS,
    DependencyGraph,
    DependencySummary,
    Dependent,
    Direction,
    ExportFormat,
    ExportRow,
    GraphEdge,
    GraphNode,
    GraphStats,
)
from drover.dependencies.packages import (
    Ecosystem,
    PackageReference,
    is_manifest_file,
    manifest_ecosystem,
    parse_manifest,
)

__all__ = [
    "EXPORT_COLUMNS",
    "UNKNOWN_STATUS",
    "DependencyExport",
    "DependencyGraph",
    "DependencyGraphEngine",
    "DependencySummary",
    "Dependent",
    "Direction",
    "Ecosystem",
    "ExportFormat",
    "ExportRow",
    "GraphEdge",
    "GraphNode",
    "GraphStats",
    "PackageReference",
    "Submodule",
    "WorkflowReference",
    "analyze_dependencies",
    "detect_circular_pairs",
    "export_dependencies",
    "is_manifest_file",
    "is_repository_reference",
    "is_workflow_file",
    "manifest_ecosystem",
    "pair_key",
    "parse_format",
    "parse_gitmodules",
    "parse_manifest",
    "parse_uses",
    "parse_workflow",
    "render_csv",
    "render_export",
    "repository_from_url",
    "summarize_dependencies",
]
