"""Remote API quota checks."""

from __future__ import annotations

import typing as typ

from factsweep.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from .client import GitHubClient

logger = get_logger(__name__)


class QuotaOracle:
    """Answer whether the GitHub request quota is close to exhaustion."""

    def __init__(self, client: GitHubClient) -> None:
        """Wrap ``client`` whose rate limit is consulted."""
        self._client = client

    async def is_off_quota(self, threshold: int) -> bool:
        """Return True when fewer than ``threshold`` requests remain."""
        remaining = await self._client.rate_limit_remaining()
        if remaining < threshold:
            log_info(
                logger,
                "Too much GitHub API quota consumed already (remaining=%d), stopping",
                remaining,
            )
            return True
        return False
