"""Behavioural tests for resumable repository iteration."""

from __future__ import annotations

import asyncio
import re
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from factsweep.facts import FactStore, Value, init_fact_storage
from factsweep.github import FakeGitHubClient, name_to_number
from factsweep.iterate import (
    CallbackContractError,
    IterationSummary,
    ProgressStore,
    iterate,
)
from factsweep.options import JudgeOptions
from tests.helpers.clock import FakeClock

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt
    from pathlib import Path

NEXT_ISSUE = (
    "(agg (and (eq repository $repository) (gt issue $before)) (min issue))"
)


def run_async[T](coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


def parse_numbers(text: str) -> list[int]:
    """Parse "1, 2 and 3" into ``[1, 2, 3]``."""
    return [int(number) for number in re.findall(r"\d+", text)]


class IterationContext(typ.TypedDict, total=False):
    """Shared state used by BDD steps."""

    store: FactStore
    clock: FakeClock
    masks: str
    lifetime: float | None
    epoch: dt.datetime | None
    delivered: list[tuple[int, Value]]
    summary: IterationSummary
    error: Exception


@scenario(
    "../repository_iteration.feature",
    "Items are processed in order and progress is remembered",
)
def test_items_processed_in_order() -> None:
    """Behavioural test: cursors advance per repository and persist."""


@scenario(
    "../repository_iteration.feature",
    "A second run resumes from the marker",
)
def test_second_run_resumes() -> None:
    """Behavioural test: a new run starts from the saved marker."""


@scenario(
    "../repository_iteration.feature",
    "An exhausted lifetime skips the run",
)
def test_lifetime_skips_run() -> None:
    """Behavioural test: budget exhaustion before start is a no-op."""


@scenario(
    "../repository_iteration.feature",
    "A callback returning a non-integer aborts the run",
)
def test_bad_callback_aborts() -> None:
    """Behavioural test: the callback contract is enforced."""


@pytest.fixture
def iteration_context(tmp_path: Path) -> typ.Iterator[IterationContext]:
    """Provision a fresh fact database for each scenario."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'iteration.db'}", poolclass=NullPool
    )
    run_async(init_fact_storage(engine))
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    yield {
        "store": FactStore(session_factory),
        "clock": FakeClock(),
        "lifetime": None,
        "epoch": None,
        "delivered": [],
    }

    run_async(engine.dispose())


@given("a fresh fact store")
def fresh_fact_store(iteration_context: IterationContext) -> None:
    """Validate the iteration context was initialised."""
    assert "store" in iteration_context


@given(parsers.parse('repositories "{masks}" are configured'))
def configure_repositories(iteration_context: IterationContext, masks: str) -> None:
    """Record the repository masks for the run."""
    iteration_context["masks"] = masks


@given(parsers.parse('repository "{slug}" has issues {issues}'))
def seed_issues(iteration_context: IterationContext, slug: str, issues: str) -> None:
    """Insert one issue fact per number."""
    store = iteration_context["store"]

    async def _seed() -> None:
        for issue in parse_numbers(issues):
            await store.insert(
                kind="issue", repository=name_to_number(slug), issue=issue
            )

    run_async(_seed())


@given(
    parsers.parse(
        "the update started {elapsed:d} seconds ago with a lifetime of "
        "{lifetime:d} seconds"
    )
)
def exhausted_lifetime(
    iteration_context: IterationContext, elapsed: int, lifetime: int
) -> None:
    """Move the update epoch into the past."""
    iteration_context["epoch"] = iteration_context["clock"].ago(elapsed)
    iteration_context["lifetime"] = lifetime


def _run_judge(
    iteration_context: IterationContext,
    label: str,
    callback: cabc.Callable[[int, Value], object],
    repeats: int = 1,
) -> None:
    options = JudgeOptions(
        repositories=iteration_context["masks"],
        lifetime=iteration_context["lifetime"],
        testing=True,
    )
    iterator = iterate(
        iteration_context["store"],
        options,
        epoch=iteration_context["epoch"],
        github=FakeGitHubClient(),
        clock=iteration_context["clock"],
    )
    try:
        iteration_context["summary"] = run_async(
            iterator.as_(label).by(NEXT_ISSUE).repeats(repeats).over(callback)
        )
    except CallbackContractError as exc:
        iteration_context["error"] = exc


@when(parsers.parse('the "{label}" judge runs with {repeats:d} repeats'))
def run_judge(iteration_context: IterationContext, label: str, repeats: int) -> None:
    """Run a judge that records every issue it is handed."""
    delivered = iteration_context["delivered"]

    def _record(repository: int, item: Value) -> int:
        delivered.append((repository, item))
        return typ.cast("int", item)

    _run_judge(iteration_context, label, _record, repeats)


@when(parsers.parse('the "{label}" judge runs with a callback returning text'))
def run_bad_judge(iteration_context: IterationContext, label: str) -> None:
    """Run a judge whose callback breaks the integer contract."""
    _run_judge(iteration_context, label, lambda repository, item: f"#{item}")


@then(parsers.parse('repository "{slug}" delivered issues {issues}'))
def delivered_issues(
    iteration_context: IterationContext, slug: str, issues: str
) -> None:
    """Verify the issues handed to the callback for a repository."""
    repository = name_to_number(slug)
    delivered = [
        item for repo, item in iteration_context["delivered"] if repo == repository
    ]
    assert delivered == parse_numbers(issues)


@then(parsers.parse('the marker "{label}" of "{slug}" is {value:d}'))
def marker_value(
    iteration_context: IterationContext, label: str, slug: str, value: int
) -> None:
    """Verify the persisted cursor."""
    progress = ProgressStore(iteration_context["store"])
    assert run_async(progress.read(label, name_to_number(slug), -1)) == value


@then(parsers.parse('repository "{slug}" restarted'))
def repository_restarted(iteration_context: IterationContext, slug: str) -> None:
    """Verify the last run restarted the repository."""
    assert name_to_number(slug) in iteration_context["summary"].restarted


@then("no issue was delivered")
def nothing_delivered(iteration_context: IterationContext) -> None:
    """Verify the callback never ran."""
    assert iteration_context["delivered"] == []


@then(parsers.parse('the run was stopped by the "{budget}" budget'))
def stopped_by(iteration_context: IterationContext, budget: str) -> None:
    """Verify which budget stopped the run."""
    assert iteration_context["summary"].stopped_by == budget


@then("the run fails with a callback contract error")
def callback_contract_error(iteration_context: IterationContext) -> None:
    """Verify the run raised for the bad return value."""
    error = iteration_context.get("error")
    assert isinstance(error, CallbackContractError)
    assert "str was returned" in str(error)


@then("no marker was saved")
def no_marker(iteration_context: IterationContext) -> None:
    """Verify nothing was persisted."""
    markers = run_async(ProgressStore(iteration_context["store"]).markers())
    assert markers == []
