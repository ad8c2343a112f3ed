"""Error taxonomy shared by the Drover control plane.

Every operation exposed to the API layer either returns a result payload or
raises one of the errors below. Each carries an :class:`ErrorKind` so callers
can map failures onto transport-specific codes without inspecting messages.

Usage
-----
Raise a conflict when a discovery is already running::

    raise ConflictError.discovery_in_progress(progress.id, progress.target)

Translate an error for a caller::

    try:
        await orchestrator.cancel_discovery()
    except DroverError as exc:
        print(exc.kind, exc)

"""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """Categories of failure surfaced to callers."""

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL = "internal"


class DroverError(Exception):
    """Base class for errors raised by Drover operations."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        """Initialise with a human-readable message."""
        self.message = message
        super().__init__(message)


class ConflictError(DroverError):
    """Raised when an operation collides with existing state."""

    kind = ErrorKind.CONFLICT

    @classmethod
    def discovery_in_progress(cls, progress_id: int, target: str) -> ConflictError:
        """Return an error for a second concurrent discovery."""
        return cls(
            f"discovery already in progress (id: {progress_id}, target: {target})"
        )

    @classmethod
    def discovery_in_progress_unknown(cls) -> ConflictError:
        """Return an error when the active run lost a creation race."""
        return cls("discovery already in progress")

    @classmethod
    def batch_name_taken(cls, name: str) -> ConflictError:
        """Return an error for a duplicate batch name."""
        return cls(
            f"A batch with the name '{name}' already exists. "
            "Please choose a different name."
        )


class NotFoundError(DroverError):
    """Raised when the entity an operation targets does not exist."""

    kind = ErrorKind.NOT_FOUND

    @classmethod
    def no_active_discovery(cls) -> NotFoundError:
        """Return an error when there is nothing to cancel."""
        return cls("No active discovery to cancel")

    @classmethod
    def cancel_handle_missing(cls) -> NotFoundError:
        """Return an error when the active run is owned elsewhere."""
        return cls(
            "Discovery cancel function not found - "
            "discovery may have already completed"
        )

    @classmethod
    def repository(cls, full_name: str) -> NotFoundError:
        """Return an error for a missing repository."""
        return cls(f"Repository not found: {full_name}")

    @classmethod
    def batch(cls, batch_id: int) -> NotFoundError:
        """Return an error for a missing batch."""
        return cls(f"Batch not found: {batch_id}")

    @classmethod
    def no_repositories(cls) -> NotFoundError:
        """Return an error when none of the requested repositories exist."""
        return cls("No repositories found")


class BadRequestError(DroverError):
    """Raised for malformed input or actions illegal in the current state."""

    kind = ErrorKind.BAD_REQUEST

    def __init__(self, message: str, *, field: str | None = None) -> None:
        """Initialise with a message and the offending field, if any."""
        self.field = field
        super().__init__(message)

    @classmethod
    def missing_field(cls, field: str) -> BadRequestError:
        """Return an error for a required but absent input."""
        return cls(f"{field} is required", field=field)

    @classmethod
    def unknown_action(cls, action: str) -> BadRequestError:
        """Return an error for an unsupported bulk status action."""
        return cls(f"unknown action: {action}", field="action")

    @classmethod
    def unknown_discovery_type(cls, value: str) -> BadRequestError:
        """Return an error for an unsupported discovery scope."""
        return cls(f"unknown discovery type: {value}", field="discovery_type")

    @classmethod
    def batch_not_ready(cls, status: str) -> BadRequestError:
        """Return an error for membership changes on a locked batch."""
        return cls(f"Can only modify batches with status 'ready' (current: {status})")

    @classmethod
    def batch_not_startable(cls, status: str) -> BadRequestError:
        """Return an error for starting a batch that already ran."""
        return cls(f"Batch cannot be started from status '{status}'")

    @classmethod
    def batch_empty(cls) -> BadRequestError:
        """Return an error for starting a batch without members."""
        return cls("Batch has no repositories")

    @classmethod
    def illegal_transition(cls, message: str) -> BadRequestError:
        """Return an error for a status transition the state machine forbids."""
        return cls(message)


class ServiceUnavailableError(DroverError):
    """Raised when a required provider client is not configured."""

    kind = ErrorKind.SERVICE_UNAVAILABLE

    @classmethod
    def provider_not_configured(cls, provider: str) -> ServiceUnavailableError:
        """Return an error for a scope whose provider has no client."""
        return cls(f"{provider} client is not configured")


class InternalError(DroverError):
    """Raised for unexpected store or provider failures."""

    kind = ErrorKind.INTERNAL

    @classmethod
    def store_failure(cls, operation: str) -> InternalError:
        """Return an error wrapping a failed store operation."""
        return cls(f"store operation failed: {operation}")


__all__ = [
    "BadRequestError",
    "ConflictError",
    "DroverError",
    "ErrorKind",
    "InternalError",
    "NotFoundError",
    "ServiceUnavailableError",
]
