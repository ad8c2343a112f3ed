"""Errors raised while crawling a source estate."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """Raised when a source provider returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)


class ProviderConfigError(RuntimeError):
    """Raised when a provider client cannot be configured."""


class RepositoryProfilingError(RuntimeError):
    """Raised when repositories in one organization or project failed to profile."""

    def __init__(self, unit: str, failures: list[Exception]) -> None:
        """Initialise with the sub-unit label and the collected failures."""
        self.unit = unit
        self.failures = failures
        super().__init__(
            f"encountered {len(failures)} errors during discovery of {unit} "
            "(see logs for details)"
        )
