"""Run options shared by every judge.

Usage
-----
Create options explicitly:

>>> options = JudgeOptions(repositories="yegor256/judges", lifetime=300)
>>> options.quota_threshold
100

Or load them from environment variables:

>>> import os
>>> os.environ["FACTSWEEP_REPOSITORIES"] = "yegor256/*,-yegor256/old*"
>>> JudgeOptions.from_env().repositories
'yegor256/*,-yegor256/old*'

"""

from __future__ import annotations

import dataclasses as dc
import os

DEFAULT_GITHUB_ENDPOINT = "https://api.github.com"
DEFAULT_QUOTA_THRESHOLD = 100

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"", "0", "false", "no", "off"})


@dc.dataclass(frozen=True, slots=True)
class JudgeOptions:
    """Options controlling one judge run.

    Attributes
    ----------
    repositories
        Comma-separated repository masks such as ``owner/name``,
        ``owner/prefix*`` or ``-owner/excluded*``. ``None`` when unset.
    lifetime
        Seconds available to the whole update, measured from the epoch.
    timeout
        Seconds available to a single judge, measured from its kickoff.
    testing
        When true, GitHub is replaced by a deterministic fake.
    github_token
        Token for the GitHub REST API.
    github_endpoint
        Base URL of the GitHub REST API.
    quota_threshold
        Remaining request count below which the quota counts as exhausted.

    """

    repositories: str | None = None
    lifetime: float | None = None
    timeout: float | None = None
    testing: bool = False
    github_token: str | None = None
    github_endpoint: str = DEFAULT_GITHUB_ENDPOINT
    quota_threshold: int = DEFAULT_QUOTA_THRESHOLD

    @staticmethod
    def _parse_positive_float(env_var: str) -> float | None:
        """Read a positive number env var, or None when it is unset."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return None
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{env_var} must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if value <= 0:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        """Read a positive integer env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < 1:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @staticmethod
    def _parse_flag(env_var: str) -> bool:
        raw = os.environ.get(env_var, "").strip().lower()
        if raw in _TRUTHY:
            return True
        if raw in _FALSY:
            return False
        msg = f"{env_var} must be a boolean flag, got: {raw!r}"
        raise ValueError(msg)

    @staticmethod
    def _optional_text(*env_vars: str) -> str | None:
        for env_var in env_vars:
            raw = os.environ.get(env_var, "").strip()
            if raw:
                return raw
        return None

    @classmethod
    def from_env(cls) -> JudgeOptions:
        """Create options from environment variables.

        Reads ``FACTSWEEP_REPOSITORIES``, ``FACTSWEEP_LIFETIME``,
        ``FACTSWEEP_TIMEOUT``, ``FACTSWEEP_TESTING``,
        ``FACTSWEEP_GITHUB_TOKEN`` (falling back to ``GITHUB_TOKEN``),
        ``FACTSWEEP_GITHUB_ENDPOINT`` and ``FACTSWEEP_QUOTA_THRESHOLD``.

        Raises
        ------
        ValueError
            If a numeric variable is not a positive number or the testing
            flag is not a recognised boolean.

        """
        return cls(
            repositories=cls._optional_text("FACTSWEEP_REPOSITORIES"),
            lifetime=cls._parse_positive_float("FACTSWEEP_LIFETIME"),
            timeout=cls._parse_positive_float("FACTSWEEP_TIMEOUT"),
            testing=cls._parse_flag("FACTSWEEP_TESTING"),
            github_token=cls._optional_text("FACTSWEEP_GITHUB_TOKEN", "GITHUB_TOKEN"),
            github_endpoint=cls._optional_text("FACTSWEEP_GITHUB_ENDPOINT")
            or DEFAULT_GITHUB_ENDPOINT,
            quota_threshold=cls._parse_positive_int(
                "FACTSWEEP_QUOTA_THRESHOLD", DEFAULT_QUOTA_THRESHOLD
            ),
        )
