"""Decide whether a judge must stop before doing more remote work.

Three budgets are checked in a fixed order and the first one that is
exhausted wins:

1. the GitHub request quota, via :class:`~factsweep.github.QuotaOracle`;
2. the lifetime of the whole update, measured from ``epoch``;
3. the timeout of this judge, measured from ``kickoff``.

A budget is considered exhausted once 90% of it has elapsed, leaving the
remainder for persisting progress.
"""

from __future__ import annotations

import enum
import typing as typ

from factsweep.common.time import elapsed_seconds, utcnow
from factsweep.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from factsweep.github import QuotaOracle
    from factsweep.options import JudgeOptions

logger = get_logger(__name__)

LIMIT_FRACTION = 0.9


class BudgetSignal(enum.StrEnum):
    """The budget that caused a stop decision."""

    QUOTA = "quota"
    LIFETIME = "lifetime"
    TIMEOUT = "timeout"


class BudgetGuard:
    """Evaluate the quota, lifetime and timeout budgets of a run."""

    def __init__(
        self,
        options: JudgeOptions,
        quota: QuotaOracle,
        *,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Bind the guard to run options, a quota oracle and a clock."""
        self._options = options
        self._quota = quota
        self._clock = clock

    async def check(
        self,
        *,
        quota_aware: bool,
        lifetime_aware: bool,
        timeout_aware: bool,
        epoch: dt.datetime,
        kickoff: dt.datetime,
    ) -> BudgetSignal | None:
        """Return the first exhausted budget, or None to continue.

        Parameters
        ----------
        quota_aware, lifetime_aware, timeout_aware
            Disable the corresponding budget when False.
        epoch
            When the whole update started.
        kickoff
            When this judge started.

        Returns
        -------
        BudgetSignal | None
            The budget that triggered the stop, if any.

        """
        if quota_aware and await self._quota.is_off_quota(
            self._options.quota_threshold
        ):
            log_info(logger, "We are off GitHub quota, time to stop")
            return BudgetSignal.QUOTA
        lifetime = self._options.lifetime
        if lifetime_aware and lifetime is not None:
            spent = elapsed_seconds(epoch, self._clock())
            if spent > lifetime * LIMIT_FRACTION:
                log_info(
                    logger,
                    "We ran out of lifetime (%.1fs already of %.1fs), must stop here",
                    spent,
                    lifetime,
                )
                return BudgetSignal.LIFETIME
        timeout = self._options.timeout
        if timeout_aware and timeout is not None:
            spent = elapsed_seconds(kickoff, self._clock())
            if spent > timeout * LIMIT_FRACTION:
                log_info(
                    logger,
                    "We've spent %.1fs of a %.1fs timeout, must stop here",
                    spent,
                    timeout,
                )
                return BudgetSignal.TIMEOUT
        return None

    async def should_stop(
        self,
        *,
        quota_aware: bool,
        lifetime_aware: bool,
        timeout_aware: bool,
        epoch: dt.datetime,
        kickoff: dt.datetime,
    ) -> bool:
        """Return True when any enabled budget is exhausted."""
        signal = await self.check(
            quota_aware=quota_aware,
            lifetime_aware=lifetime_aware,
            timeout_aware=timeout_aware,
            epoch=epoch,
            kickoff=kickoff,
        )
        return signal is not None
