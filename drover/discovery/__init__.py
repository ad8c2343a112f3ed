"""Discovery: crawling a source estate into the repository inventory.

Usage
-----
Start a crawl of one GitHub organization and poll its progress::

    from drover.discovery import DiscoveryOrchestrator, DiscoveryScope, ProviderKind

    orchestrator = DiscoveryOrchestrator(store, {ProviderKind.GITHUB: github})
    progress = await orchestrator.start_discovery(
        DiscoveryScope.for_organization("acme")
    )
    latest = await orchestrator.get_progress()

"""

from drover.discovery.collector import RepositoryCollector
from drover.discovery.errors import (
    ProviderConfigError,
    ProviderError,
    RepositoryProfilingError,
)
from drover.discovery.models import (
    CancelResult,
    DiscoveryScope,
    ForceResetResult,
    ProviderKind,
    SourceRepository,
    UnitResult,
)
from drover.discovery.observability import (
    DiscoveryEventLogger,
    DiscoveryEventType,
    DiscoveryRunContext,
    ErrorCategory,
    categorize_error,
)
from drover.discovery.orchestrator import (
    ALREADY_FINISHED_MESSAGE,
    NO_STUCK_DISCOVERY_MESSAGE,
    RESET_APPLIED_MESSAGE,
    DiscoveryOrchestrator,
)
from drover.discovery.progress import (
    NullProgressTracker,
    ProgressTracker,
    StoreProgressTracker,
)
from drover.discovery.provider import ProviderClient, ProviderFactory
from drover.discovery.registry import CancellationRegistry, CancelToken

__all__ = [
    "ALREADY_FINISHED_MESSAGE",
    "NO_STUCK_DISCOVERY_MESSAGE",
    "RESET_APPLIED_MESSAGE",
    "CancelResult",
    "CancelToken",
    "CancellationRegistry",
    "DiscoveryEventLogger",
    "DiscoveryEventType",
    "DiscoveryOrchestrator",
    "DiscoveryRunContext",
    "DiscoveryScope",
    "ErrorCategory",
    "ForceResetResult",
    "NullProgressTracker",
    "ProgressTracker",
    "ProviderClient",
    "ProviderConfigError",
    "ProviderError",
    "ProviderFactory",
    "ProviderKind",
    "RepositoryCollector",
    "RepositoryProfilingError",
    "SourceRepository",
    "StoreProgressTracker",
    "UnitResult",
    "categorize_error",
]
