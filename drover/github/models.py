"""Typed views of the GitHub REST payloads used during discovery."""

from __future__ import annotations

import msgspec


class GitHubRepositoryPayload(msgspec.Struct, kw_only=True):
    """Repository fields read from ``/orgs/{org}/repos`` and ``/repos/{repo}``.

    ``size`` is reported by GitHub in kilobytes.
    """

    name: str
    full_name: str
    html_url: str | None = None
    default_branch: str | None = None
    size: int = 0
    visibility: str | None = None
    private: bool = False
    archived: bool = False


class GitHubContentEntry(msgspec.Struct, kw_only=True):
    """A file or directory entry from the contents API."""

    name: str
    path: str
    type: str
    content: str | None = None
    encoding: str | None = None
