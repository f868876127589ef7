"""Construction of the GitHub client shared by one run."""

from __future__ import annotations

import typing as typ

from .client import GitHubRestClient, GitHubRestConfig
from .fake import FakeGitHubClient

if typ.TYPE_CHECKING:
    from factsweep.options import JudgeOptions

    from .client import GitHubClient

CACHE_KEY: typ.Final = "github.client"


def github_client(
    options: JudgeOptions, cache: typ.MutableMapping[str, object]
) -> GitHubClient:
    """Return the run's GitHub client, creating it on first use.

    The client is memoised in ``cache`` so every collaborator of a run
    talks to GitHub through the same connection pool.
    """
    existing = cache.get(CACHE_KEY)
    if existing is not None:
        return typ.cast("GitHubClient", existing)
    client: GitHubClient
    if options.testing:
        client = FakeGitHubClient()
    else:
        client = GitHubRestClient(GitHubRestConfig.from_options(options))
    cache[CACHE_KEY] = client
    return client
