"""Deterministic stand-in for GitHub used when options enable testing."""

from __future__ import annotations

import typing as typ

from factsweep.common.slug import parse_repo_slug

from .client import RepositoryPayload

DEFAULT_LISTINGS: typ.Final[typ.Mapping[str, tuple[str, ...]]] = {
    "yegor256": ("yegor256/judges", "yegor256/factbase"),
}
ARCHIVED_REPOSITORIES: typ.Final = frozenset({"zerocracy/datum"})


def name_to_number(name: str) -> int:
    """Return the fake id of ``name``: the sum of its character codes.

    Examples
    --------
    >>> name_to_number("foo/bar")
    680

    """
    return sum(ord(char) for char in name)


class FakeGitHubClient:
    """In-memory :class:`~factsweep.github.client.GitHubClient`.

    Ids are derived from names, the quota never moves unless a test sets
    ``remaining``, and a repository is archived when it is listed in
    :data:`ARCHIVED_REPOSITORIES` or its name starts with ``archived``.
    """

    def __init__(
        self,
        *,
        remaining: int = 100,
        listings: typ.Mapping[str, typ.Sequence[str]] | None = None,
    ) -> None:
        """Configure the reported quota and the per-owner listings."""
        self.remaining = remaining
        self._listings = dict(DEFAULT_LISTINGS if listings is None else listings)
        self.rate_limit_calls = 0

    async def rate_limit_remaining(self) -> int:
        """Return the configured remaining quota."""
        self.rate_limit_calls += 1
        return self.remaining

    async def repository(self, name: str) -> RepositoryPayload:
        """Return a payload with a name-derived id."""
        _, repo = parse_repo_slug(name)
        archived = name in ARCHIVED_REPOSITORIES or repo.startswith("archived")
        return RepositoryPayload(
            id=name_to_number(name), full_name=name, archived=archived
        )

    async def list_repositories(self, owner: str) -> list[RepositoryPayload]:
        """Return the configured listing of ``owner`` (empty when unknown)."""
        return [
            await self.repository(name) for name in self._listings.get(owner, ())
        ]

    async def aclose(self) -> None:
        """Nothing to release."""
