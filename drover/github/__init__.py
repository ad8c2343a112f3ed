"""GitHub provider for repository discovery."""

from drover.github.client import (
    OVERSIZED_REPOSITORY_BYTES,
    GitHubClient,
    GitHubConfig,
    GitHubProviderFactory,
)
from drover.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
)
from drover.github.models import GitHubContentEntry, GitHubRepositoryPayload

__all__ = [
    "OVERSIZED_REPOSITORY_BYTES",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubConfig",
    "GitHubConfigError",
    "GitHubContentEntry",
    "GitHubProviderFactory",
    "GitHubRepositoryPayload",
    "GitHubResponseShapeError",
]
