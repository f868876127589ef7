"""Structured observability events for repository iteration runs.

Every event is one log line of the form ``[event.type] key=value ...`` so
log aggregators can parse runs, sweeps and per-repository decisions.

Usage
-----
>>> event_logger = IterationEventLogger()
>>> event_logger.log_run_started(label="issues-was-lost", repositories=3)

"""

from __future__ import annotations

import enum
import typing as typ

import httpx
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from factsweep.facts import FactStoreError, QueryError
from factsweep.github import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from factsweep.logging import get_logger, log_debug, log_error, log_info

from .errors import (
    CallbackContractError,
    InvalidMaskError,
    IterateConfigError,
    NoRepositoriesError,
    SortKeyError,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from factsweep.facts import Value

    from .budget import BudgetSignal
    from .iterator import IterationSummary

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500


class IterationEventType(enum.StrEnum):
    """Structured log event types for iteration runs."""

    RUN_STARTED = "iteration.run.started"
    RUN_SKIPPED = "iteration.run.skipped"
    RUN_COMPLETED = "iteration.run.completed"
    RUN_FAILED = "iteration.run.failed"
    SWEEP_STOPPED = "iteration.sweep.stopped"
    REPOSITORY_SKIPPED = "iteration.repository.skipped"
    REPOSITORY_RESTARTED = "iteration.repository.restarted"
    ITEM_DELIVERED = "iteration.item.delivered"
    MARKER_PERSISTED = "iteration.marker.persisted"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    CALLBACK_CONTRACT = "callback_contract"
    QUERY = "query"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (CallbackContractError, ErrorCategory.CALLBACK_CONTRACT),
    (IterateConfigError, ErrorCategory.CONFIGURATION),
    (InvalidMaskError, ErrorCategory.CONFIGURATION),
    (NoRepositoriesError, ErrorCategory.CONFIGURATION),
    (GitHubConfigError, ErrorCategory.CONFIGURATION),
    (GitHubResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (httpx.TransportError, ErrorCategory.TRANSIENT),
    (QueryError, ErrorCategory.QUERY),
    (SortKeyError, ErrorCategory.QUERY),
    (FactStoreError, ErrorCategory.DATA_INTEGRITY),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Returns
    -------
    ErrorCategory
        The type of failure, for alert routing.

    """
    if isinstance(exc, GitHubAPIError):
        if (
            exc.status_code is not None
            and exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD
        ):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class IterationEventLogger:
    """Emit structured iteration events via femtologging.

    Run lifecycle and persisted markers are logged at INFO, per-item and
    restart decisions at DEBUG, failures at ERROR.
    """

    def log_run_started(self, *, label: str, repositories: int) -> None:
        """Log the start of a run over ``repositories`` repositories."""
        log_info(
            logger,
            "[%s] label=%s repositories=%d",
            IterationEventType.RUN_STARTED,
            label,
            repositories,
        )

    def log_run_skipped(self, *, label: str, signal: BudgetSignal) -> None:
        """Log a run that stopped before touching any repository."""
        log_info(
            logger,
            "[%s] label=%s budget=%s",
            IterationEventType.RUN_SKIPPED,
            label,
            signal,
        )

    def log_run_completed(
        self, *, summary: IterationSummary, duration: dt.timedelta
    ) -> None:
        """Log a finished run with its per-repository totals.

        Parameters
        ----------
        summary
            Outcome of the run.
        duration
            Wall-clock time between the start of ``over`` and completion.

        """
        log_info(
            logger,
            "[%s] label=%s duration_seconds=%.3f repositories=%d visits=%d "
            "restarted=%d persisted=%d stopped_by=%s",
            IterationEventType.RUN_COMPLETED,
            summary.label,
            duration.total_seconds(),
            len(summary.repositories),
            sum(summary.seen.values()),
            len(summary.restarted),
            len(summary.persisted),
            summary.stopped_by,
        )

    def log_run_failed(
        self, *, label: str, error: BaseException, duration: dt.timedelta
    ) -> None:
        """Log a failed run with error categorization."""
        log_error(
            logger,
            "[%s] label=%s duration_seconds=%.3f error_type=%s "
            "error_category=%s error_message=%s",
            IterationEventType.RUN_FAILED,
            label,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_sweep_stopped(
        self, *, label: str, sweep: int, signal: BudgetSignal
    ) -> None:
        """Log a budget stop at the top of a sweep."""
        log_info(
            logger,
            "[%s] label=%s sweep=%d budget=%s",
            IterationEventType.SWEEP_STOPPED,
            label,
            sweep,
            signal,
        )

    def log_repository_skipped(
        self, *, label: str, repository: int, signal: BudgetSignal
    ) -> None:
        """Log a repository not checked because a budget ran out."""
        log_info(
            logger,
            "[%s] label=%s repository=%d budget=%s",
            IterationEventType.REPOSITORY_SKIPPED,
            label,
            repository,
            signal,
        )

    def log_repository_restarted(
        self, *, label: str, repository: int, before: int, since: int
    ) -> None:
        """Log a repository whose query ran dry."""
        log_debug(
            logger,
            "[%s] label=%s repository=%d before=%d since=%d",
            IterationEventType.REPOSITORY_RESTARTED,
            label,
            repository,
            before,
            since,
        )

    def log_item_delivered(
        self, *, label: str, repository: int, before: int, value: Value
    ) -> None:
        """Log an item handed to the callback."""
        log_debug(
            logger,
            "[%s] label=%s repository=%d before=%d value=%s",
            IterationEventType.ITEM_DELIVERED,
            label,
            repository,
            before,
            value,
        )

    def log_marker_persisted(self, *, label: str, repository: int, value: int) -> None:
        """Log a cursor written to a marker fact."""
        log_info(
            logger,
            "[%s] label=%s repository=%d value=%d",
            IterationEventType.MARKER_PERSISTED,
            label,
            repository,
            value,
        )
