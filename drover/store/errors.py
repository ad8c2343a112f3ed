"""Errors raised by the persistence layer."""

from __future__ import annotations


class TimezoneAwareRequiredError(ValueError):
    """Raised when a naive datetime is bound to a UTC column."""

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error for a naive datetime value."""
        return cls("timestamps must be timezone-aware")
