"""Resolve configured repository masks into repository ids."""

from __future__ import annotations

import re
import typing as typ

from factsweep.common.slug import parse_repo_slug, slug_owner
from factsweep.logging import get_logger, log_debug

from .errors import InvalidMaskError, NoRepositoriesError

if typ.TYPE_CHECKING:
    import random

    from factsweep.github import GitHubClient, RepositoryPayload
    from factsweep.options import JudgeOptions

logger = get_logger(__name__)

REPOSITORY_CACHE_KEY: typ.Final = "github.repositories"


def mask_to_regex(mask: str) -> re.Pattern[str]:
    """Compile ``owner/name*`` into a case-insensitive full-match pattern.

    Examples
    --------
    >>> bool(mask_to_regex("yegor256/ju*").fullmatch("Yegor256/judges"))
    True

    """
    owner, name = parse_repo_slug(mask)
    if "*" in owner:
        raise InvalidMaskError.owner_wildcard(mask)
    pattern = ".*".join(re.escape(part) for part in name.split("*"))
    return re.compile(f"{re.escape(owner)}/{pattern}", re.IGNORECASE)


def split_masks(masks: str) -> tuple[list[str], list[str]]:
    """Split a comma-separated mask list into inclusions and exclusions."""
    entries = [entry.strip() for entry in masks.split(",")]
    entries = [entry for entry in entries if entry]
    includes = [entry for entry in entries if not entry.startswith("-")]
    excludes = [entry[1:] for entry in entries if entry.startswith("-")]
    return includes, excludes


class RepositorySet:
    """The repositories a judge sweeps, in sweep order.

    Repository payloads are memoised in the run cache so names are looked
    up on GitHub at most once per run, however many iterators resolve the
    same set.
    """

    def __init__(
        self,
        options: JudgeOptions,
        client: GitHubClient,
        cache: typ.MutableMapping[str, object],
        *,
        rng: random.Random | None = None,
    ) -> None:
        """Bind the set to options, a GitHub client and the run cache."""
        self._options = options
        self._client = client
        self._cache = cache
        self._rng = rng

    def _known(self) -> dict[str, RepositoryPayload]:
        known = self._cache.setdefault(REPOSITORY_CACHE_KEY, {})
        return typ.cast("dict[str, RepositoryPayload]", known)

    async def _lookup(self, name: str) -> RepositoryPayload:
        known = self._known()
        key = name.lower()
        if key not in known:
            known[key] = await self._client.repository(name)
        return known[key]

    async def _expand(self, mask: str) -> list[str]:
        if "*" not in mask:
            return [mask]
        regex = mask_to_regex(mask)
        listing = await self._client.list_repositories(slug_owner(mask))
        known = self._known()
        matched: list[str] = []
        for payload in listing:
            known.setdefault(payload.full_name.lower(), payload)
            if regex.fullmatch(payload.full_name):
                matched.append(payload.full_name)
        return matched

    async def names(self) -> list[str]:
        """Return the unmasked, non-archived repository names.

        Raises
        ------
        NoRepositoriesError
            If no repositories are configured or none survive filtering.
        InvalidMaskError
            If a mask has a wildcard in its owner part.

        """
        masks = self._options.repositories
        if not masks or not masks.strip():
            raise NoRepositoriesError.not_configured()
        includes, excludes = split_masks(masks)
        candidates: list[str] = []
        for mask in includes:
            candidates.extend(await self._expand(mask))
        exclusions = [mask_to_regex(mask) for mask in excludes]
        seen: set[str] = set()
        names: list[str] = []
        for name in candidates:
            key = name.lower()
            if key in seen or any(regex.fullmatch(name) for regex in exclusions):
                continue
            seen.add(key)
            if (await self._lookup(name)).archived:
                log_debug(logger, "Repository %s is archived, skipping it", name)
                continue
            names.append(name)
        if not names:
            raise NoRepositoriesError.no_matches(masks)
        if self._rng is not None:
            self._rng.shuffle(names)
        log_debug(
            logger,
            "Scanning %d repositories: %s...",
            len(names),
            ", ".join(names),
        )
        return names

    async def resolve(self) -> list[int]:
        """Return the repository ids to sweep, in sweep order."""
        return [(await self._lookup(name)).id for name in await self.names()]
