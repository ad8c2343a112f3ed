"""Find repository references in package manifests.

npm ``package.json``, Go ``go.mod``, Ruby ``Gemfile`` and Terraform ``*.tf``
files may pull code straight from a Git repository instead of a package
registry. Only references that resolve to a repository on a GitHub host are
returned; ordinary registry packages are ignored.

Examples
--------
>>> refs = parse_manifest("go.mod", "require github.com/acme/lib v1.2.0\\n")
>>> [(ref.ecosystem, ref.repository, ref.version) for ref in refs]
[(<Ecosystem.GO: 'go'>, 'acme/lib', 'v1.2.0')]

"""

from __future__ import annotations

import dataclasses as dc
import enum
import re
import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    import collections.abc as cabc

DEFAULT_HOST = "github.com"

_HOST = r"[^\s/:@'\"]*github[^\s/:@'\"]*"
_GIT_URL = re.compile(
    rf"(?:git\+)?(?:https?|ssh|git)://(?:[^@/\s]+@)?(?P<host>{_HOST})"
    r"/(?P<owner>[^/\s'\"]+)/(?P<repo>[^/?#\s'\"]+)"
)
_SCP_URL = re.compile(
    rf"git@(?P<host>{_HOST}):(?P<owner>[^/\s'\"]+)/(?P<repo>[^/?#\s'\"]+)"
)
_HOST_PATH = re.compile(
    rf"^(?P<host>{_HOST})/(?P<owner>[^/\s]+)/(?P<repo>[^/?#\s]+)"
)
_NPM_SHORTHAND = re.compile(
    r"^(?:github:)?(?P<owner>[A-Za-z_-][\w.-]*)/(?P<repo>[\w.-]+)(?:#.*)?$"
)
_GEM_NAME = re.compile(r"""^\s*gem\s+['"](?P<name>[^'"]+)['"]""")
_GEM_GITHUB = re.compile(r"""github:\s*['"](?P<owner>[^/'"]+)/(?P<repo>[^'"]+)['"]""")
_GEM_GIT = re.compile(r"""git:\s*['"](?P<url>[^'"]+)['"]""")
_TERRAFORM_MODULE = re.compile(
    r'module\s+"[^"]+"\s*\{[^}]*?source\s*=\s*"(?P<source>[^"]+)"'
)
_REGISTRY_MODULE_PARTS = 3


class Ecosystem(enum.StrEnum):
    """Package managers whose manifests are scanned."""

    NPM = "npm"
    GO = "go"
    RUBYGEMS = "rubygems"
    TERRAFORM = "terraform"


_MANIFEST_NAMES = {
    "package.json": Ecosystem.NPM,
    "go.mod": Ecosystem.GO,
    "Gemfile": Ecosystem.RUBYGEMS,
}


@dc.dataclass(frozen=True, slots=True)
class PackageReference:
    """A manifest entry that resolves to a GitHub repository."""

    ecosystem: Ecosystem
    manifest: str
    package_name: str
    version: str
    repository: str
    host: str = DEFAULT_HOST

    @property
    def url(self) -> str:
        """Return the web URL of the referenced repository."""
        return f"https://{self.host}/{self.repository}"


class _PackageJSON(msgspec.Struct, rename="camel"):
    dependencies: dict[str, str] = msgspec.field(default_factory=dict)
    dev_dependencies: dict[str, str] = msgspec.field(default_factory=dict)


def manifest_ecosystem(path: str) -> Ecosystem | None:
    """Return the ecosystem of a manifest path, or ``None`` for other files."""
    name = path.rsplit("/", 1)[-1]
    if name.endswith(".tf"):
        return Ecosystem.TERRAFORM
    return _MANIFEST_NAMES.get(name)


def is_manifest_file(path: str) -> bool:
    """Return whether ``path`` names a scanned package manifest."""
    return manifest_ecosystem(path) is not None


def _repository(owner: str, repo: str) -> str:
    return f"{owner}/{repo.removesuffix('.git')}"


def match_git_url(value: str) -> tuple[str, str] | None:
    """Return ``(host, owner/repo)`` for a GitHub Git URL, or ``None``.

    Examples
    --------
    >>> match_git_url("git+https://github.example.com/acme/lib.git#v1")
    ('github.example.com', 'acme/lib')

    """
    for pattern in (_GIT_URL, _SCP_URL):
        if match := pattern.search(value):
            return match["host"], _repository(match["owner"], match["repo"])
    return None


def _npm_target(version: str) -> tuple[str, str] | None:
    if url_match := match_git_url(version):
        return url_match
    if version.count("/") != 1 or (
        ":" in version and not version.startswith("github:")
    ):
        return None
    if match := _NPM_SHORTHAND.match(version):
        return DEFAULT_HOST, _repository(match["owner"], match["repo"])
    return None


def parse_package_json(content: str, manifest: str) -> list[PackageReference]:
    """Return Git-hosted dependencies and devDependencies of ``package.json``.

    Raises
    ------
    msgspec.DecodeError
        If the manifest is not valid JSON of the expected shape.

    """
    package = msgspec.json.decode(content, type=_PackageJSON)
    references: list[PackageReference] = []
    for name, version in {**package.dependencies, **package.dev_dependencies}.items():
        if (target := _npm_target(version)) is None:
            continue
        host, repository = target
        references.append(
            PackageReference(
                ecosystem=Ecosystem.NPM,
                manifest=manifest,
                package_name=name,
                version=version,
                repository=repository,
                host=host,
            )
        )
    return references


def _go_requirements(content: str) -> cabc.Iterator[tuple[str, str]]:
    in_block = False
    for raw_line in content.splitlines():
        line = raw_line.split("//", 1)[0].strip()
        if line.startswith("require ("):
            in_block = True
            continue
        if in_block and line == ")":
            in_block = False
            continue
        if not in_block:
            if not line.startswith("require "):
                continue
            line = line.removeprefix("require ")
        fields = line.split()
        if len(fields) >= 2:  # noqa: PLR2004
            yield fields[0], fields[1]


def parse_go_mod(content: str, manifest: str) -> list[PackageReference]:
    """Return ``require`` entries of ``go.mod`` hosted on GitHub."""
    references: list[PackageReference] = []
    for module_path, version in _go_requirements(content):
        if (match := _HOST_PATH.match(module_path)) is None:
            continue
        references.append(
            PackageReference(
                ecosystem=Ecosystem.GO,
                manifest=manifest,
                package_name=module_path,
                version=version,
                repository=_repository(match["owner"], match["repo"]),
                host=match["host"],
            )
        )
    return references


def parse_gemfile(content: str, manifest: str) -> list[PackageReference]:
    """Return gems declared with ``github:`` or a GitHub ``git:`` URL."""
    references: list[PackageReference] = []
    for line in content.splitlines():
        if (name_match := _GEM_NAME.match(line)) is None:
            continue
        target: tuple[str, str] | None = None
        if shorthand := _GEM_GITHUB.search(line):
            target = DEFAULT_HOST, _repository(shorthand["owner"], shorthand["repo"])
        elif git := _GEM_GIT.search(line):
            target = match_git_url(git["url"])
        if target is None:
            continue
        host, repository = target
        references.append(
            PackageReference(
                ecosystem=Ecosystem.RUBYGEMS,
                manifest=manifest,
                package_name=name_match["name"],
                version=line.strip(),
                repository=repository,
                host=host,
            )
        )
    return references


def _is_registry_module(source: str) -> bool:
    """Return whether ``source`` is a ``namespace/name/provider`` registry path."""
    if source.startswith("git::") or "://" in source:
        return False
    parts = source.split("/")
    return len(parts) == _REGISTRY_MODULE_PARTS and "." not in parts[0]


def _terraform_target(source: str) -> tuple[str, str] | None:
    if source.startswith(("./", "../", "/")) or _is_registry_module(source):
        return None
    cleaned = source.removeprefix("git::")
    if match := _HOST_PATH.match(cleaned):
        return match["host"], _repository(match["owner"], match["repo"])
    return match_git_url(cleaned)


def parse_terraform(content: str, manifest: str) -> list[PackageReference]:
    """Return ``module`` blocks whose ``source`` is a GitHub repository."""
    references: list[PackageReference] = []
    for match in _TERRAFORM_MODULE.finditer(content):
        source = match["source"]
        if (target := _terraform_target(source)) is None:
            continue
        host, repository = target
        references.append(
            PackageReference(
                ecosystem=Ecosystem.TERRAFORM,
                manifest=manifest,
                package_name=source,
                version=source,
                repository=repository,
                host=host,
            )
        )
    return references


_PARSERS: dict[Ecosystem, cabc.Callable[[str, str], list[PackageReference]]] = {
    Ecosystem.NPM: parse_package_json,
    Ecosystem.GO: parse_go_mod,
    Ecosystem.RUBYGEMS: parse_gemfile,
    Ecosystem.TERRAFORM: parse_terraform,
}


def parse_manifest(path: str, content: str) -> list[PackageReference]:
    """Dispatch ``content`` to the parser for the manifest at ``path``.

    Files that are not scanned manifests yield no references.

    Raises
    ------
    msgspec.DecodeError
        If a ``package.json`` manifest cannot be decoded.

    """
    ecosystem = manifest_ecosystem(path)
    if ecosystem is None:
        return []
    return _PARSERS[ecosystem](content, path)
