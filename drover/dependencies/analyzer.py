"""Extract cross-repository references from repository files.

Three sources are understood: ``.gitmodules`` entries pointing at GitHub
repositories, GitHub Actions ``uses:`` references to other repositories
(reusable workflows at job level and actions at step level), and package
manifests that install code from a GitHub repository. Whether a reference
is local to the estate is decided later, once every repository has been
discovered.
"""

from __future__ import annotations

import dataclasses as dc
import re
import typing as typ

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from drover.dependencies.packages import parse_manifest
from drover.logging import get_logger, log_debug, log_warning
from drover.store import DependencyRef, DependencyType

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

YAML_VERSION = (1, 2)
WORKFLOWS_DIRECTORY = ".github/workflows"
WORKFLOW_SUFFIXES = (".yml", ".yaml")

_URL_PATTERNS = (
    re.compile(r"https?://[^/]*github[^/]*/([^/]+)/([^/]+)"),
    re.compile(r"git@[^:]*github[^:]*:([^/]+)/([^/]+)"),
    re.compile(r"git://[^/]*github[^/]*/([^/]+)/([^/]+)"),
)


@dc.dataclass(frozen=True, slots=True)
class Submodule:
    """One ``[submodule]`` section of a ``.gitmodules`` file."""

    url: str
    path: str = ""
    branch: str = ""


@dc.dataclass(frozen=True, slots=True)
class WorkflowReference:
    """A ``uses:`` reference to another repository."""

    workflow_file: str
    uses: str
    repository: str
    ref: str
    workflow_path: str = ""


def repository_from_url(url: str) -> str | None:
    """Return ``owner/repo`` for a GitHub clone URL, or ``None``.

    Examples
    --------
    >>> repository_from_url("git@github.com:acme/widgets.git")
    'acme/widgets'
    >>> repository_from_url("https://gitlab.com/acme/widgets") is None
    True

    """
    trimmed = url.strip().removesuffix(".git")
    for pattern in _URL_PATTERNS:
        if match := pattern.search(trimmed):
            return f"{match.group(1)}/{match.group(2)}"
    return None


def parse_gitmodules(content: str) -> list[Submodule]:
    """Parse the sections of a ``.gitmodules`` file.

    Sections without a ``url`` are ignored.
    """
    submodules: list[Submodule] = []
    current: dict[str, str] | None = None

    def close_section() -> None:
        if current is not None and current.get("url"):
            submodules.append(Submodule(**current))

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if line.startswith("[submodule "):
            close_section()
            current = {}
            continue
        if current is None or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key in {"path", "url", "branch"}:
            current[key] = value.strip()
    close_section()
    return submodules


def is_repository_reference(uses: str) -> bool:
    """Return whether a ``uses:`` value names another repository."""
    return (
        "/" in uses and not uses.startswith("docker://") and not uses.startswith("./")
    )


def parse_uses(uses: str, workflow_file: str) -> WorkflowReference | None:
    """Split ``owner/repo[/path]@ref`` into its parts.

    Examples
    --------
    >>> ref = parse_uses("acme/ci/.github/workflows/build.yml@v2", "ci.yml")
    >>> (ref.repository, ref.ref, ref.workflow_path)
    ('acme/ci', 'v2', '.github/workflows/build.yml')

    """
    target, separator, ref = uses.partition("@")
    if not separator:
        return None
    parts = target.split("/", 2)
    if len(parts) < 2:  # noqa: PLR2004
        return None
    return WorkflowReference(
        workflow_file=workflow_file,
        uses=uses,
        repository=f"{parts[0]}/{parts[1]}",
        ref=ref,
        workflow_path=parts[2] if len(parts) == 3 else "",  # noqa: PLR2004
    )


def parse_workflow(content: str, workflow_file: str) -> list[WorkflowReference]:
    """Return repository references from one workflow file.

    Raises
    ------
    YAMLError
        If the workflow is not valid YAML.

    """
    document = _yaml().load(content)
    if not isinstance(document, dict):
        return []
    jobs = document.get("jobs")
    if not isinstance(jobs, dict):
        return []

    references: list[WorkflowReference] = []
    for job in jobs.values():
        if not isinstance(job, dict):
            continue
        uses = job.get("uses")
        if isinstance(uses, str) and (ref := parse_uses(uses, workflow_file)):
            references.append(ref)
        steps = job.get("steps")
        if not isinstance(steps, list):
            continue
        for step in steps:
            if not isinstance(step, dict):
                continue
            uses = step.get("uses")
            if not isinstance(uses, str) or not is_repository_reference(uses):
                continue
            if ref := parse_uses(uses, workflow_file):
                references.append(ref)
    return references


def is_workflow_file(path: str) -> bool:
    """Return whether ``path`` is a workflow definition."""
    return path.startswith(f"{WORKFLOWS_DIRECTORY}/") and path.endswith(
        WORKFLOW_SUFFIXES
    )


def analyze_dependencies(
    *,
    gitmodules: str | None = None,
    workflows: cabc.Mapping[str, str] | None = None,
    manifests: cabc.Mapping[str, str] | None = None,
    repository: str = "",
) -> tuple[DependencyRef, ...]:
    """Build dependency references from submodules, workflows and manifests.

    Parameters
    ----------
    gitmodules
        Contents of ``.gitmodules``, if the repository has one.
    workflows
        Workflow file contents keyed by file name.
    manifests
        Package manifest contents (``package.json``, ``go.mod``, ``Gemfile``,
        ``*.tf``) keyed by path.
    repository
        Name of the repository being analysed, used for logging.

    Returns
    -------
    tuple[DependencyRef, ...]
        Submodule references, then workflow references, then package
        references. Workflow references are de-duplicated on
        ``repository@ref`` and package references on the target repository;
        files that fail to parse are skipped with a warning.

    """
    dependencies: list[DependencyRef] = []

    for submodule in parse_gitmodules(gitmodules or ""):
        target = repository_from_url(submodule.url)
        if target is None:
            log_debug(logger, "Skipping non-GitHub submodule %s", submodule.url)
            continue
        dependencies.append(
            DependencyRef(
                dependency_full_name=target,
                dependency_type=DependencyType.SUBMODULE,
                dependency_url=submodule.url,
                metadata={
                    "path": submodule.path,
                    "url": submodule.url,
                    "branch": submodule.branch,
                },
            )
        )

    seen: set[str] = set()
    for workflow_file, content in (workflows or {}).items():
        try:
            references = parse_workflow(content, workflow_file)
        except YAMLError as exc:
            log_warning(
                logger,
                "Failed to parse workflow %s in %s: %s",
                workflow_file,
                repository,
                exc,
            )
            continue
        for reference in references:
            key = f"{reference.repository}@{reference.ref}"
            if key in seen:
                continue
            seen.add(key)
            dependencies.append(
                DependencyRef(
                    dependency_full_name=reference.repository,
                    dependency_type=DependencyType.WORKFLOW,
                    dependency_url=f"https://github.com/{reference.repository}",
                    metadata={
                        "workflow_file": reference.workflow_file,
                        "uses": reference.uses,
                        "ref": reference.ref,
                        "workflow_path": reference.workflow_path,
                    },
                )
            )

    dependencies.extend(_package_dependencies(manifests or {}, repository))

    log_debug(
        logger,
        "Extracted %d dependencies from %s",
        len(dependencies),
        repository,
    )
    return tuple(dependencies)


def _package_dependencies(
    manifests: cabc.Mapping[str, str], repository: str
) -> list[DependencyRef]:
    dependencies: list[DependencyRef] = []
    seen: set[str] = set()
    for manifest, content in manifests.items():
        try:
            references = parse_manifest(manifest, content)
        except msgspec.DecodeError as exc:
            log_warning(
                logger,
                "Failed to parse manifest %s in %s: %s",
                manifest,
                repository,
                exc,
            )
            continue
        for reference in references:
            if reference.repository in seen:
                continue
            seen.add(reference.repository)
            dependencies.append(
                DependencyRef(
                    dependency_full_name=reference.repository,
                    dependency_type=DependencyType.PACKAGE,
                    dependency_url=reference.url,
                    metadata={
                        "source": "file_scan",
                        "ecosystem": str(reference.ecosystem),
                        "manifest": reference.manifest,
                        "package_name": reference.package_name,
                        "version": reference.version,
                        "source_host": reference.host,
                    },
                )
            )
    return dependencies


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = True
    return yaml
