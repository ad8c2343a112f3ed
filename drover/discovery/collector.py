"""Crawl one organization or project with a bounded worker pool."""

from __future__ import annotations

import asyncio
import typing as typ

from drover.common.time import utcnow
from drover.logging import get_logger, log_debug, log_warning
from drover.store import DiscoveryPhase

from .errors import RepositoryProfilingError
from .models import UnitResult

if typ.TYPE_CHECKING:
    from drover.store import Store

    from .models import SourceRepository
    from .progress import ProgressTracker
    from .provider import ProviderClient

logger = get_logger(__name__)


def _collect_failures(gathered: list[None | BaseException]) -> list[Exception]:
    """Split gathered results into failures, re-raising system exceptions."""
    failures: list[Exception] = []
    for result in gathered:
        if isinstance(result, Exception):
            failures.append(result)
        elif isinstance(result, BaseException):
            raise result
    return failures


class RepositoryCollector:
    """Profile every repository in a sub-unit and persist the results.

    At most ``workers`` repositories are profiled concurrently. A failed
    profile is recorded on the progress tracker and still counts as
    processed; the sub-unit then raises :class:`RepositoryProfilingError`
    once every repository has been attempted.
    """

    def __init__(self, store: Store, tracker: ProgressTracker, *, workers: int) -> None:
        """Bind the store and tracker used for every sub-unit."""
        self._store = store
        self._tracker = tracker
        self._workers = max(1, workers)

    async def collect(
        self,
        client: ProviderClient,
        organization: str,
        *,
        project: str | None = None,
    ) -> UnitResult:
        """List and profile the repositories of one organization or project.

        Raises
        ------
        RepositoryProfilingError
            If any repository failed to profile.

        """
        unit = f"{organization}/{project}" if project else organization
        await self._tracker.start_org(unit)
        try:
            repositories = [
                repository
                async for repository in client.iter_repositories(
                    organization, project=project
                )
            ]
            await self._tracker.add_repos(len(repositories))
            await self._tracker.set_phase(DiscoveryPhase.PROFILING_REPOS)

            semaphore = asyncio.Semaphore(self._workers)

            async def bounded_profile(repository: SourceRepository) -> None:
                async with semaphore:
                    await self._profile(client, repository)

            gathered = await asyncio.gather(
                *(bounded_profile(repository) for repository in repositories),
                return_exceptions=True,
            )
            failures = _collect_failures(gathered)
        finally:
            await self._tracker.complete_org(unit)

        if failures:
            raise RepositoryProfilingError(unit, failures)
        return UnitResult(unit=unit, repositories=len(repositories))

    async def _profile(
        self, client: ProviderClient, repository: SourceRepository
    ) -> None:
        try:
            profile = await client.profile_repository(repository)
            record = await self._store.upsert_repository(
                profile, discovered_at=utcnow()
            )
            await self._store.replace_dependencies(record.id, profile.dependencies)
            log_debug(
                logger,
                "Profiled %s with %d dependencies",
                record.full_name,
                len(profile.dependencies),
            )
        except Exception as exc:
            log_warning(logger, "Failed to profile %s: %s", repository.full_name, exc)
            await self._tracker.record_error(f"{repository.full_name}: {exc}")
            raise
        finally:
            await self._tracker.increment_processed_repos()
