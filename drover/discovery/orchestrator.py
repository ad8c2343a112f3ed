"""Run discoveries in the background and control them while they run.

At most one discovery may be ``in_progress`` across the whole deployment;
the store enforces this. Each run executes as an asyncio task in this
process and registers a cancel handle that :meth:`cancel_discovery` uses.
Cancellation is cooperative: it is observed between organizations or
projects, so the run finishes the sub-unit it is working on first.
"""

from __future__ import annotations

import asyncio
import typing as typ

from drover.common.time import utcnow
from drover.config import DroverConfig
from drover.errors import (
    BadRequestError,
    ConflictError,
    DroverError,
    NotFoundError,
    ServiceUnavailableError,
)
from drover.logging import get_logger, log_info, log_warning
from drover.store import DiscoveryPhase, DiscoveryStatus, DiscoveryType

from .collector import RepositoryCollector
from .errors import RepositoryProfilingError
from .models import CancelResult, DiscoveryScope, ForceResetResult
from .observability import DiscoveryEventLogger, DiscoveryRunContext
from .progress import StoreProgressTracker
from .registry import CancellationRegistry, CancelToken

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from drover.store import DiscoveryProgressRecord, Store

    from .models import ProviderKind
    from .progress import ProgressTracker
    from .provider import ProviderClient, ProviderFactory

logger = get_logger(__name__)

NO_STUCK_DISCOVERY_MESSAGE = "No stuck discovery found"
ALREADY_FINISHED_MESSAGE = "Discovery already completed before reset was applied"
RESET_APPLIED_MESSAGE = "Stuck discovery reset"


class DiscoveryOrchestrator:
    """Start, cancel, and reset discovery runs.

    Parameters
    ----------
    store
        Persistence for progress records and discovered repositories.
    providers
        Provider factories keyed by platform. A scope whose platform has no
        factory is rejected with :class:`ServiceUnavailableError`.
    config
        Worker pool size, progress flush cadence, and timeouts.
    registry
        Cancel handles for runs owned by this process.

    """

    def __init__(
        self,
        store: Store,
        providers: cabc.Mapping[ProviderKind, ProviderFactory],
        *,
        config: DroverConfig | None = None,
        registry: CancellationRegistry | None = None,
        events: DiscoveryEventLogger | None = None,
    ) -> None:
        """Wire the orchestrator to its collaborators."""
        self._store = store
        self._providers = dict(providers)
        self._config = config or DroverConfig()
        self._registry = registry or CancellationRegistry()
        self._events = events or DiscoveryEventLogger()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> CancellationRegistry:
        """Return the cancel registry for runs owned by this process."""
        return self._registry

    async def start_discovery(
        self, scope: DiscoveryScope, *, workers: int | None = None
    ) -> DiscoveryProgressRecord:
        """Create a progress record and launch the crawl in the background.

        Returns the freshly created ``in_progress`` record; the crawl itself
        continues after this coroutine returns.

        Raises
        ------
        ServiceUnavailableError
            If no provider is configured for the scope's platform.
        BadRequestError
            If ``workers`` is not positive.
        ConflictError
            If another discovery is already in progress.

        """
        factory = self._providers.get(scope.provider)
        if factory is None:
            raise ServiceUnavailableError.provider_not_configured(scope.provider)
        if workers is None:
            workers = self._config.discovery_workers
        if workers < 1:
            msg = "workers must be a positive integer"
            raise BadRequestError(msg, field="workers")

        active = await self._store.get_active_discovery()
        if active is not None:
            raise ConflictError.discovery_in_progress(active.id, active.target)

        progress = await self._store.create_discovery(
            scope.discovery_type, scope.target, total_orgs=scope.total_orgs
        )
        token = CancelToken()
        self._registry.register(progress.id, token.cancel)
        task = asyncio.create_task(
            self._run(progress, scope, factory, token, workers),
            name=f"discovery-{progress.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        log_info(
            logger,
            "Started %s discovery %d for %s with %d workers",
            scope.discovery_type,
            progress.id,
            scope.target,
            workers,
        )
        return progress

    async def cancel_discovery(self) -> CancelResult:
        """Ask the active discovery to stop at its next sub-unit boundary.

        Raises
        ------
        NotFoundError
            If no discovery is active, or the active one is not owned by this
            process (for example after a restart).

        """
        active = await self._store.get_active_discovery()
        if active is None:
            raise NotFoundError.no_active_discovery()
        if not self._registry.cancel(active.id):
            raise NotFoundError.cancel_handle_missing()
        try:
            await self._store.update_discovery(
                active.id, phase=DiscoveryPhase.CANCELLING
            )
        except DroverError as exc:
            log_warning(
                logger, "Failed to mark discovery %d as cancelling: %s", active.id, exc
            )
        log_info(logger, "Cancellation requested for discovery %d", active.id)
        return CancelResult(progress_id=active.id, target=active.target)

    async def force_reset_discovery(self) -> ForceResetResult:
        """Mark a stuck ``in_progress`` discovery as cancelled.

        The reset is conditioned on the record still being ``in_progress``
        when it is written, so a run that finishes concurrently keeps its
        terminal status and the reset reports that nothing was done.
        """
        active = await self._store.get_active_discovery()
        if active is None:
            return ForceResetResult(
                action_taken=False,
                records_reset=0,
                message=NO_STUCK_DISCOVERY_MESSAGE,
            )

        records_reset = await self._store.reset_discovery_if_active(active.id)
        if records_reset == 0:
            return ForceResetResult(
                action_taken=False,
                records_reset=0,
                message=ALREADY_FINISHED_MESSAGE,
                discovery=active,
            )

        # A live run owned by this process stops at its next boundary.
        self._registry.cancel(active.id)
        self._registry.remove(active.id)
        self._events.log_reset_applied(active.id, active.target, records_reset)
        return ForceResetResult(
            action_taken=True,
            records_reset=records_reset,
            message=RESET_APPLIED_MESSAGE,
            discovery=active,
        )

    async def get_progress(self) -> DiscoveryProgressRecord | None:
        """Return the active discovery, or the most recent one."""
        active = await self._store.get_active_discovery()
        if active is not None:
            return active
        return await self._store.get_latest_discovery()

    def is_running(self) -> bool:
        """Return whether this process is running a discovery."""
        return any(not task.done() for task in self._tasks)

    async def recover_stuck_discoveries(self) -> int:
        """Fail discoveries left ``in_progress`` longer than the stuck timeout."""
        cutoff = utcnow() - self._config.stuck_discovery_timeout
        records_reset = await self._store.recover_stuck_discoveries(cutoff)
        if records_reset:
            self._events.log_stuck_recovered(records_reset, cutoff)
        return records_reset

    async def wait_closed(self) -> None:
        """Wait for every run owned by this process to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel runs owned by this process and wait for them to stop."""
        for task in self._tasks:
            task.cancel()
        await self.wait_closed()

    async def _run(
        self,
        progress: DiscoveryProgressRecord,
        scope: DiscoveryScope,
        factory: ProviderFactory,
        token: CancelToken,
        workers: int,
    ) -> None:
        context = DiscoveryRunContext(
            progress_id=progress.id,
            discovery_type=scope.discovery_type,
            target=scope.target,
            started_at=progress.started_at,
        )
        tracker = StoreProgressTracker(
            self._store, progress.id, flush_every=self._config.progress_flush_every
        )
        self._events.log_run_started(context)
        try:
            error: Exception | None = None
            try:
                await self._execute(scope, factory, token, tracker, workers, context)
            except Exception as exc:  # noqa: BLE001 - any failure ends the run
                error = exc
            await self._finish(context, token, tracker, error)
        except asyncio.CancelledError:
            await self._finish_quietly(progress.id, DiscoveryStatus.CANCELLED)
            raise
        finally:
            self._registry.remove(progress.id)

    async def _finish(
        self,
        context: DiscoveryRunContext,
        token: CancelToken,
        tracker: ProgressTracker,
        error: Exception | None,
    ) -> None:
        await tracker.flush()
        duration = utcnow() - context.started_at
        if token.cancelled:
            await self._finish_quietly(context.progress_id, DiscoveryStatus.CANCELLED)
            self._events.log_run_cancelled(context, duration)
        elif error is not None:
            await self._finish_quietly(
                context.progress_id, DiscoveryStatus.FAILED, last_error=str(error)
            )
            self._events.log_run_failed(context, error, duration)
        else:
            await self._finish_quietly(context.progress_id, DiscoveryStatus.COMPLETE)
            self._events.log_run_completed(context, duration)

    async def _finish_quietly(
        self,
        progress_id: int,
        status: DiscoveryStatus,
        *,
        last_error: str | None = None,
    ) -> None:
        try:
            await self._store.finish_discovery(
                progress_id, status, last_error=last_error
            )
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to mark discovery %d as %s: %s",
                progress_id,
                status,
                exc,
            )

    async def _execute(  # noqa: PLR0913
        self,
        scope: DiscoveryScope,
        factory: ProviderFactory,
        token: CancelToken,
        tracker: ProgressTracker,
        workers: int,
        context: DiscoveryRunContext,
    ) -> None:
        collector = RepositoryCollector(self._store, tracker, workers=workers)
        match scope.discovery_type:
            case DiscoveryType.ORGANIZATION:
                await tracker.set_total_orgs(1)
                await self._collect_unit(
                    factory.client_for(scope.name), collector, scope.name, context
                )
            case DiscoveryType.ENTERPRISE:
                await self._discover_enterprise(
                    scope, factory, token, tracker, collector, context
                )
            case DiscoveryType.ADO_ORGANIZATION | DiscoveryType.ADO_PROJECT:
                await self._discover_projects(
                    scope, factory, token, tracker, collector, context
                )
        if token.cancelled:
            return
        try:
            updated = await self._store.update_local_dependency_flags()
        except DroverError as exc:
            log_warning(logger, "Failed to update local dependency flags: %s", exc)
        else:
            log_info(logger, "Updated %d local dependency flags", updated)

    async def _collect_unit(
        self,
        client: ProviderClient,
        collector: RepositoryCollector,
        organization: str,
        context: DiscoveryRunContext,
        *,
        project: str | None = None,
    ) -> None:
        try:
            result = await collector.collect(client, organization, project=project)
        finally:
            await client.aclose()
        self._events.log_unit_completed(context, result.unit, result.repositories)

    async def _discover_enterprise(  # noqa: PLR0913
        self,
        scope: DiscoveryScope,
        factory: ProviderFactory,
        token: CancelToken,
        tracker: ProgressTracker,
        collector: RepositoryCollector,
        context: DiscoveryRunContext,
    ) -> None:
        """Crawl each enterprise organization, continuing past failures."""
        enterprise_client = factory.client_for(None)
        try:
            organizations = [
                organization
                async for organization in enterprise_client.iter_organizations(
                    scope.name
                )
            ]
        finally:
            await enterprise_client.aclose()
        await tracker.set_total_orgs(len(organizations))

        for index, organization in enumerate(organizations):
            if token.cancelled:
                return
            try:
                await self._collect_unit(
                    factory.client_for(organization), collector, organization, context
                )
            except Exception as exc:  # noqa: BLE001 - one org must not stop the rest
                self._events.log_unit_failed(context, organization, exc)
                if not isinstance(exc, RepositoryProfilingError):
                    await tracker.record_error(f"{organization}: {exc}")
            if index < len(organizations) - 1 and await token.sleep(
                self._config.org_delay_seconds
            ):
                return

    async def _discover_projects(  # noqa: PLR0913
        self,
        scope: DiscoveryScope,
        factory: ProviderFactory,
        token: CancelToken,
        tracker: ProgressTracker,
        collector: RepositoryCollector,
        context: DiscoveryRunContext,
    ) -> None:
        """Crawl Azure DevOps projects; the last project error fails the run."""
        projects = list(scope.projects)
        if scope.discovery_type is DiscoveryType.ADO_ORGANIZATION:
            listing_client = factory.client_for(scope.name)
            try:
                projects = [
                    project
                    async for project in listing_client.iter_projects(scope.name)
                ]
            finally:
                await listing_client.aclose()
        await tracker.set_total_orgs(len(projects))

        last_error: Exception | None = None
        for project in projects:
            if token.cancelled:
                return
            try:
                await self._collect_unit(
                    factory.client_for(scope.name),
                    collector,
                    scope.name,
                    context,
                    project=project,
                )
            except Exception as exc:  # noqa: BLE001 - remaining projects still run
                self._events.log_unit_failed(context, f"{scope.name}/{project}", exc)
                if not isinstance(exc, RepositoryProfilingError):
                    await tracker.record_error(f"{scope.name}/{project}: {exc}")
                last_error = exc
        if last_error is not None:
            raise last_error
