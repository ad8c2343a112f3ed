"""Structured log events for discovery runs.

Events are emitted through the standard library logger as ``[event]
key=value`` lines so log aggregators can alert on failed or stuck crawls.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import typing as typ

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from drover.errors import InternalError, ServiceUnavailableError

from .errors import ProviderConfigError, ProviderError, RepositoryProfilingError

if typ.TYPE_CHECKING:
    import datetime as dt

logger = logging.getLogger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500
_HTTP_TOO_MANY_REQUESTS = 429


class DiscoveryEventType(enum.StrEnum):
    """Structured log event types for discovery observability."""

    RUN_STARTED = "discovery.run.started"
    RUN_COMPLETED = "discovery.run.completed"
    RUN_FAILED = "discovery.run.failed"
    RUN_CANCELLED = "discovery.run.cancelled"
    UNIT_COMPLETED = "discovery.unit.completed"
    UNIT_FAILED = "discovery.unit.failed"
    RESET_APPLIED = "discovery.reset.applied"
    STUCK_RECOVERED = "discovery.stuck.recovered"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    PROVIDER_ERROR = "provider_error"
    PROFILING = "profiling"
    CONFIGURATION = "configuration"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class DiscoveryRunContext:
    """Shared context for a single discovery run."""

    progress_id: int
    discovery_type: str
    target: str
    started_at: dt.datetime


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (RepositoryProfilingError, ErrorCategory.PROFILING),
    (ProviderConfigError, ErrorCategory.CONFIGURATION),
    (ServiceUnavailableError, ErrorCategory.CONFIGURATION),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
    (InternalError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Examples
    --------
    >>> categorize_error(ProviderError("boom", status_code=502))
    <ErrorCategory.TRANSIENT: 'transient'>

    """
    if isinstance(exc, ProviderError):
        status = exc.status_code
        if status is not None and (
            status >= _HTTP_SERVER_ERROR_THRESHOLD or status == _HTTP_TOO_MANY_REQUESTS
        ):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.PROVIDER_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class DiscoveryEventLogger:
    """Emit structured discovery events via Python logging."""

    def log_run_started(self, context: DiscoveryRunContext) -> None:
        """Log discovery run start."""
        logger.info(
            "[%s] progress_id=%d discovery_type=%s target=%s started_at=%s",
            DiscoveryEventType.RUN_STARTED,
            context.progress_id,
            context.discovery_type,
            context.target,
            context.started_at.isoformat(),
        )

    def log_run_completed(
        self, context: DiscoveryRunContext, duration: dt.timedelta
    ) -> None:
        """Log successful completion."""
        logger.info(
            "[%s] progress_id=%d discovery_type=%s target=%s duration_seconds=%.3f",
            DiscoveryEventType.RUN_COMPLETED,
            context.progress_id,
            context.discovery_type,
            context.target,
            duration.total_seconds(),
        )

    def log_run_failed(
        self,
        context: DiscoveryRunContext,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log a failed run with error categorization."""
        logger.error(
            "[%s] progress_id=%d discovery_type=%s target=%s duration_seconds=%.3f "
            "error_type=%s error_category=%s error_message=%s",
            DiscoveryEventType.RUN_FAILED,
            context.progress_id,
            context.discovery_type,
            context.target,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_run_cancelled(
        self, context: DiscoveryRunContext, duration: dt.timedelta
    ) -> None:
        """Log a run that stopped after a cancel request."""
        logger.warning(
            "[%s] progress_id=%d discovery_type=%s target=%s duration_seconds=%.3f",
            DiscoveryEventType.RUN_CANCELLED,
            context.progress_id,
            context.discovery_type,
            context.target,
            duration.total_seconds(),
        )

    def log_unit_completed(
        self, context: DiscoveryRunContext, unit: str, repositories: int
    ) -> None:
        """Log an organization or project that finished profiling."""
        logger.info(
            "[%s] progress_id=%d unit=%s repositories=%d",
            DiscoveryEventType.UNIT_COMPLETED,
            context.progress_id,
            unit,
            repositories,
        )

    def log_unit_failed(
        self, context: DiscoveryRunContext, unit: str, error: BaseException
    ) -> None:
        """Log an organization or project that could not be crawled."""
        logger.warning(
            "[%s] progress_id=%d unit=%s error_type=%s error_category=%s "
            "error_message=%s",
            DiscoveryEventType.UNIT_FAILED,
            context.progress_id,
            unit,
            type(error).__name__,
            categorize_error(error),
            str(error),
        )

    def log_reset_applied(
        self, progress_id: int, target: str, records_reset: int
    ) -> None:
        """Log an operator force reset."""
        logger.warning(
            "[%s] progress_id=%d target=%s records_reset=%d",
            DiscoveryEventType.RESET_APPLIED,
            progress_id,
            target,
            records_reset,
        )

    def log_stuck_recovered(self, records_reset: int, cutoff: dt.datetime) -> None:
        """Log discoveries reset at start-up because they were abandoned."""
        logger.warning(
            "[%s] records_reset=%d started_before=%s",
            DiscoveryEventType.STUCK_RECOVERED,
            records_reset,
            cutoff.isoformat(),
        )
