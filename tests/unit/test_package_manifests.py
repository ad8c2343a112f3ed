"""Tests for repository references found in package manifests."""

from __future__ import annotations

import msgspec
import pytest

from drover.dependencies import Ecosystem, manifest_ecosystem, parse_manifest
from drover.dependencies.packages import match_git_url

PACKAGE_JSON = """\
{
  "name": "web",
  "dependencies": {
    "lodash": "^4.17.21",
    "ui": "acme/ui",
    "theme": "github:acme/theme#v2",
    "local": "file:../local",
    "aliased": "npm:@scope/aliased@1.0.0",
    "elsewhere": "https://gitlab.com/acme/elsewhere.git"
  },
  "devDependencies": {
    "lint-config": "git+ssh://git@github.example.com/platform/lint-config.git#v1"
  }
}
"""

GO_MOD = """\
module github.com/acme/api

go 1.22

require github.com/acme/single v0.1.0

require (
\tgithub.com/acme/go-lib v1.4.0
\tgolang.org/x/text v0.14.0
\tgithub.example.com/platform/sdk/v2 v2.0.1 // indirect
)
"""

TERRAFORM = """\
module "vpc" {
  source = "github.com/acme/terraform-vpc?ref=v1.0.0"
}

module "consul" {
  source  = "hashicorp/consul/aws"
  version = "0.1.0"
}

module "local" {
  source = "./modules/local"
}

"""

TF_GIT_SOURCE = (
    "git::https://github.example.com/platform/tf-modules.git//network?ref=v2"
)
TERRAFORM += f'module "network" {{\n  source = "{TF_GIT_SOURCE}"\n}}\n'

GEMFILE = """\
source "https://rubygems.org"

gem "rails", "~> 7.1"
gem "shared", github: "acme/shared-gem"
gem "internal", git: "git@github.example.com:platform/internal.git", branch: "main"
gem "other", git: "https://gitlab.com/acme/other.git"
"""


def _targets(path: str, content: str) -> list[tuple[str, str, str]]:
    return [
        (reference.package_name, reference.host, reference.repository)
        for reference in parse_manifest(path, content)
    ]


class TestManifestEcosystem:
    """Tests for recognising manifest files by name."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("package.json", Ecosystem.NPM),
            ("web/package.json", Ecosystem.NPM),
            ("go.mod", Ecosystem.GO),
            ("Gemfile", Ecosystem.RUBYGEMS),
            ("infra/main.tf", Ecosystem.TERRAFORM),
            ("package-lock.json", None),
            ("Gemfile.lock", None),
            ("go.sum", None),
        ],
    )
    def test_manifest_ecosystem(self, path: str, expected: Ecosystem | None) -> None:
        """Manifests are recognised by file name wherever they live."""
        assert manifest_ecosystem(path) == expected

    def test_other_files_have_no_references(self) -> None:
        """Files that are not manifests are not parsed."""
        assert parse_manifest("README.md", "github.com/acme/lib") == []


class TestParsers:
    """Tests for each manifest format."""

    def test_package_json(self) -> None:
        """Only Git-hosted specs pointing at GitHub hosts resolve."""
        assert _targets("package.json", PACKAGE_JSON) == [
            ("ui", "github.com", "acme/ui"),
            ("theme", "github.com", "acme/theme"),
            ("lint-config", "github.example.com", "platform/lint-config"),
        ]

    def test_package_json_reference_fields(self) -> None:
        """References keep the manifest, ecosystem, version and web URL."""
        reference = parse_manifest("web/package.json", PACKAGE_JSON)[1]

        assert reference.ecosystem == Ecosystem.NPM
        assert reference.manifest == "web/package.json"
        assert reference.version == "github:acme/theme#v2"
        assert reference.url == "https://github.com/acme/theme"

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_invalid_package_json(self, content: str) -> None:
        """Undecodable manifests raise a msgspec decode error."""
        with pytest.raises(msgspec.DecodeError):
            parse_manifest("package.json", content)

    def test_go_mod(self) -> None:
        """Single and block ``require`` entries on GitHub hosts are returned."""
        references = parse_manifest("go.mod", GO_MOD)

        assert [
            (reference.repository, reference.version, reference.host)
            for reference in references
        ] == [
            ("acme/single", "v0.1.0", "github.com"),
            ("acme/go-lib", "v1.4.0", "github.com"),
            ("platform/sdk", "v2.0.1", "github.example.com"),
        ]
        assert references[2].package_name == "github.example.com/platform/sdk/v2"

    def test_terraform(self) -> None:
        """Registry modules and local paths are ignored."""
        assert _targets("main.tf", TERRAFORM) == [
            (
                "github.com/acme/terraform-vpc?ref=v1.0.0",
                "github.com",
                "acme/terraform-vpc",
            ),
            (
                TF_GIT_SOURCE,
                "github.example.com",
                "platform/tf-modules",
            ),
        ]

    def test_gemfile(self) -> None:
        """Gems installed from GitHub are returned with their gem names."""
        assert _targets("Gemfile", GEMFILE) == [
            ("shared", "github.com", "acme/shared-gem"),
            ("internal", "github.example.com", "platform/internal"),
        ]


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://github.com/acme/lib.git", ("github.com", "acme/lib")),
        ("git@github.com:acme/lib.git", ("github.com", "acme/lib")),
        ("git://github.example.com/acme/lib#main", ("github.example.com", "acme/lib")),
        ("https://bitbucket.org/acme/lib.git", None),
    ],
)
def test_match_git_url(url: str, expected: tuple[str, str] | None) -> None:
    """Only GitHub-hosted Git URLs resolve to repositories."""
    assert match_git_url(url) == expected
