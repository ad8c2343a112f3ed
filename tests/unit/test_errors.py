"""Unit tests for the Drover error taxonomy."""

from __future__ import annotations

import pytest

from drover.errors import (
    BadRequestError,
    ConflictError,
    DroverError,
    ErrorKind,
    InternalError,
    NotFoundError,
    ServiceUnavailableError,
)


@pytest.mark.parametrize(
    ("error", "kind", "message"),
    [
        pytest.param(
            ConflictError.discovery_in_progress(7, "acme"),
            ErrorKind.CONFLICT,
            "discovery already in progress (id: 7, target: acme)",
            id="discovery-conflict",
        ),
        pytest.param(
            NotFoundError.no_active_discovery(),
            ErrorKind.NOT_FOUND,
            "No active discovery to cancel",
            id="no-active",
        ),
        pytest.param(
            NotFoundError.cancel_handle_missing(),
            ErrorKind.NOT_FOUND,
            "Discovery cancel function not found - "
            "discovery may have already completed",
            id="cancel-handle",
        ),
        pytest.param(
            BadRequestError.batch_empty(),
            ErrorKind.BAD_REQUEST,
            "Batch has no repositories",
            id="batch-empty",
        ),
        pytest.param(
            BadRequestError.batch_not_ready("in_progress"),
            ErrorKind.BAD_REQUEST,
            "Can only modify batches with status 'ready' (current: in_progress)",
            id="batch-not-ready",
        ),
        pytest.param(
            ServiceUnavailableError.provider_not_configured("azure_devops"),
            ErrorKind.SERVICE_UNAVAILABLE,
            "azure_devops client is not configured",
            id="provider",
        ),
        pytest.param(
            InternalError.store_failure("create_batch"),
            ErrorKind.INTERNAL,
            "store operation failed: create_batch",
            id="store",
        ),
    ],
)
def test_factories_carry_kind_and_message(
    error: DroverError, kind: ErrorKind, message: str
) -> None:
    """Each factory produces the documented kind and message."""
    assert error.kind is kind, f"Expected {kind}, got {error.kind}"
    assert str(error) == message
    assert error.message == message


def test_bad_request_records_field() -> None:
    """Field-specific errors keep the field name for the API layer."""
    error = BadRequestError.missing_field("repository_ids")

    assert error.field == "repository_ids"
    assert str(error) == "repository_ids is required"


def test_unknown_action_names_action_field() -> None:
    """Unknown bulk actions point at the action field."""
    error = BadRequestError.unknown_action("explode")

    assert error.field == "action"
    assert "explode" in str(error)


def test_all_errors_share_base_class() -> None:
    """Callers can catch every domain failure with DroverError."""
    for error_type in (
        BadRequestError,
        ConflictError,
        InternalError,
        NotFoundError,
        ServiceUnavailableError,
    ):
        assert issubclass(error_type, DroverError), f"{error_type} must subclass"
