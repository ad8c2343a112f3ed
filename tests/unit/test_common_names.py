"""Tests for repository full-name helpers."""

from __future__ import annotations

import pytest

from drover.common.names import (
    basename,
    default_destination,
    full_name,
    organization_of,
)


@pytest.mark.parametrize(
    ("name", "organization", "base"),
    [
        ("acme/widgets", "acme", "widgets"),
        ("contoso/payments/api", "contoso", "api"),
        ("standalone", "standalone", "standalone"),
    ],
)
def test_name_segments(name: str, organization: str, base: str) -> None:
    """Organization and basename come from the first and last segments."""
    assert organization_of(name) == organization
    assert basename(name) == base


def test_full_name_joins_parts() -> None:
    """full_name joins its parts with a slash."""
    assert full_name("contoso", "payments", "api") == "contoso/payments/api"


def test_default_destination_uses_basename() -> None:
    """Batch-default destinations drop the source organization and project."""
    assert default_destination("acme-cloud", "contoso/payments/api") == (
        "acme-cloud/api"
    )
