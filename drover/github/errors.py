"""GitHub provider errors."""

from __future__ import annotations

from drover.discovery.errors import ProviderConfigError, ProviderError


class GitHubAPIError(ProviderError):
    """Raised when GitHub returns an error response."""

    @classmethod
    def http_error(cls, status_code: int, path: str) -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"GitHub HTTP {status_code} for {path}", status_code=status_code)

    @classmethod
    def graphql_errors(cls, errors: object) -> GitHubAPIError:
        """Return an error for GraphQL `errors` payloads."""
        return cls(f"GitHub GraphQL errors: {errors}")

    @classmethod
    def unsupported(cls, operation: str) -> GitHubAPIError:
        """Return an error for operations GitHub has no equivalent for."""
        return cls(f"GitHub does not support {operation}")


class GitHubResponseShapeError(ProviderError):
    """Raised when GitHub responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitHub response missing expected field: {field}")


class GitHubConfigError(ProviderConfigError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def missing_token(cls) -> GitHubConfigError:
        """Return an error when no GitHub token is configured."""
        return cls("DROVER_GITHUB_TOKEN is required for GitHub discovery")

    @classmethod
    def empty_token(cls) -> GitHubConfigError:
        """Return an error when the provided token is empty."""
        return cls("GitHub token must be non-empty")
