"""Unit tests for the iteration observability module."""

from __future__ import annotations

import datetime as dt

import httpx
import pytest
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from factsweep.facts import QuerySyntaxError
from factsweep.github import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
)
from factsweep.iterate import (
    BudgetSignal,
    CallbackContractError,
    IterateConfigError,
    IterationSummary,
    NoRepositoriesError,
    SortKeyError,
)
from factsweep.iterate import observability as observability_module
from factsweep.iterate.observability import (
    ErrorCategory,
    IterationEventLogger,
    IterationEventType,
    categorize_error,
)
from tests.helpers.recording_logger import RecordingLogger


class TestCategorizeError:
    """Tests for error categorization."""

    def test_github_api_error_5xx_is_transient(self) -> None:
        """GitHub 5xx errors are classified as transient."""
        exc = GitHubAPIError.http_error(502, "/rate_limit")
        assert categorize_error(exc) == ErrorCategory.TRANSIENT

    def test_github_api_error_4xx_is_client_error(self) -> None:
        """GitHub 4xx errors are classified as client errors."""
        exc = GitHubAPIError.http_error(404, "/repos/foo/bar")
        assert categorize_error(exc) == ErrorCategory.CLIENT_ERROR

    def test_github_api_error_without_status_is_client_error(self) -> None:
        """Errors carrying no status code default to client errors."""
        assert categorize_error(GitHubAPIError("boom")) == ErrorCategory.CLIENT_ERROR

    def test_transport_error_is_transient(self) -> None:
        """Network failures are worth retrying."""
        exc = httpx.ConnectError("refused")
        assert categorize_error(exc) == ErrorCategory.TRANSIENT

    def test_response_shape_error_is_schema_drift(self) -> None:
        """Undecodable payloads indicate schema drift."""
        exc = GitHubResponseShapeError.invalid("/rate_limit", "missing rate")
        assert categorize_error(exc) == ErrorCategory.SCHEMA_DRIFT

    @pytest.mark.parametrize(
        "exc",
        [
            GitHubConfigError.missing_token(),
            IterateConfigError.missing("as"),
            NoRepositoriesError.no_matches("foo/*"),
        ],
    )
    def test_configuration_errors(self, exc: Exception) -> None:
        """Setup mistakes are configuration failures."""
        assert categorize_error(exc) == ErrorCategory.CONFIGURATION

    def test_callback_contract(self) -> None:
        """Bad callback results get their own category."""
        exc = CallbackContractError.wrong_return("x")
        assert categorize_error(exc) == ErrorCategory.CALLBACK_CONTRACT

    @pytest.mark.parametrize(
        "exc",
        [
            QuerySyntaxError.unexpected_end(4),
            SortKeyError.unorderable("issue", ["int", "str"]),
        ],
    )
    def test_query_errors(self, exc: Exception) -> None:
        """Query evaluation problems are query failures."""
        assert categorize_error(exc) == ErrorCategory.QUERY

    def test_operational_error_is_database_connectivity(self) -> None:
        """SQLAlchemy OperationalError is database connectivity."""
        exc = OperationalError("connection failed", None, Exception("test"))
        assert categorize_error(exc) == ErrorCategory.DATABASE_CONNECTIVITY

    def test_interface_error_is_database_connectivity(self) -> None:
        """SQLAlchemy InterfaceError is database connectivity."""
        exc = InterfaceError("interface failed", None, Exception("test"))
        assert categorize_error(exc) == ErrorCategory.DATABASE_CONNECTIVITY

    def test_integrity_error_is_data_integrity(self) -> None:
        """SQLAlchemy IntegrityError is data integrity."""
        exc = IntegrityError("duplicate key", None, Exception("test"))
        assert categorize_error(exc) == ErrorCategory.DATA_INTEGRITY

    def test_unknown_exception_is_unknown(self) -> None:
        """Unknown exception types default to unknown category."""
        assert categorize_error(ValueError("nope")) == ErrorCategory.UNKNOWN


class TestIterationEventLogger:
    """Tests for the structured event lines."""

    @pytest.fixture
    def recorder(self, monkeypatch: pytest.MonkeyPatch) -> RecordingLogger:
        """Swap the module logger for a recording double."""
        recorder = RecordingLogger()
        monkeypatch.setattr(observability_module, "logger", recorder)
        return recorder

    def test_run_started(self, recorder: RecordingLogger) -> None:
        """Run start names the label and repository count."""
        IterationEventLogger().log_run_started(label="issues", repositories=3)

        [call] = recorder.calls
        assert call.level == "INFO"
        assert call.message == "[iteration.run.started] label=issues repositories=3"

    def test_run_skipped_names_budget(self, recorder: RecordingLogger) -> None:
        """Skipped runs report which budget ran out."""
        IterationEventLogger().log_run_skipped(
            label="issues", signal=BudgetSignal.LIFETIME
        )

        [call] = recorder.events(IterationEventType.RUN_SKIPPED)
        assert "budget=lifetime" in call.message

    def test_run_completed_totals(self, recorder: RecordingLogger) -> None:
        """Completion aggregates the summary."""
        summary = IterationSummary(
            label="issues",
            repositories=(680, 688),
            seen={680: 3, 688: 1},
            restarted=frozenset({688}),
            persisted={680: 12},
        )

        IterationEventLogger().log_run_completed(
            summary=summary, duration=dt.timedelta(seconds=1.5)
        )

        [call] = recorder.events(IterationEventType.RUN_COMPLETED)
        assert call.level == "INFO"
        for fragment in (
            "duration_seconds=1.500",
            "repositories=2",
            "visits=4",
            "restarted=1",
            "persisted=1",
            "stopped_by=None",
        ):
            assert fragment in call.message

    def test_run_failed_logs_error_with_exception(
        self, recorder: RecordingLogger
    ) -> None:
        """Failures carry type, category and the exception itself."""
        error = NoRepositoriesError.no_matches("foo/*")

        IterationEventLogger().log_run_failed(
            label="issues", error=error, duration=dt.timedelta(seconds=0)
        )

        [call] = recorder.events(IterationEventType.RUN_FAILED)
        assert call.level == "ERROR"
        assert call.exc_info is error
        assert "error_type=NoRepositoriesError" in call.message
        assert "error_category=configuration" in call.message
        assert "error_message=No repos found matching: foo/*" in call.message

    def test_per_item_events_are_debug(self, recorder: RecordingLogger) -> None:
        """Deliveries and restarts are too chatty for INFO."""
        events = IterationEventLogger()
        events.log_item_delivered(label="issues", repository=680, before=0, value=7)
        events.log_repository_restarted(
            label="issues", repository=680, before=7, since=0
        )

        assert [call.level for call in recorder.calls] == ["DEBUG", "DEBUG"]
        assert recorder.calls[0].message == (
            "[iteration.item.delivered] label=issues repository=680 before=0 value=7"
        )

    def test_budget_stops(self, recorder: RecordingLogger) -> None:
        """Sweep and repository stops name their budget."""
        events = IterationEventLogger()
        events.log_sweep_stopped(label="issues", sweep=2, signal=BudgetSignal.QUOTA)
        events.log_repository_skipped(
            label="issues", repository=680, signal=BudgetSignal.TIMEOUT
        )

        assert recorder.messages("INFO") == [
            "[iteration.sweep.stopped] label=issues sweep=2 budget=quota",
            "[iteration.repository.skipped] label=issues repository=680 "
            "budget=timeout",
        ]
