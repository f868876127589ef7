"""GitHub access for repository resolution and quota checks."""

from __future__ import annotations

from .client import (
    GitHubClient,
    GitHubRestClient,
    GitHubRestConfig,
    RateLimitPayload,
    RepositoryPayload,
)
from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .factory import github_client
from .fake import FakeGitHubClient, name_to_number
from .quota import QuotaOracle

__all__ = [
    "FakeGitHubClient",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubConfigError",
    "GitHubResponseShapeError",
    "GitHubRestClient",
    "GitHubRestConfig",
    "QuotaOracle",
    "RateLimitPayload",
    "RepositoryPayload",
    "github_client",
    "name_to_number",
]
