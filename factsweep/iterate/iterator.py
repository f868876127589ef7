"""Resumable, budget-aware iteration over a fleet of repositories.

A judge describes what to fetch next and how to process it::

    await (
        iterate(store, options)
        .as_("issues_were_scanned")
        .by("(agg (and (eq repository $repository) (gt issue $before)) (min issue))")
        .repeats(20)
        .over(process_issue)
    )

``over`` sweeps the repositories round-robin. Each visit runs the query with
``$before`` bound to the repository's cursor and hands the suggestion to the
callback, whose integer return value becomes the new cursor. A repository
whose query suggests nothing restarts from the initial cursor and sits out
the rest of the run. Cursors that moved are persisted on marker facts when
the run ends, so the next run resumes where this one stopped.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import datetime as dt
import enum
import inspect
import typing as typ

from factsweep.common.time import utcnow
from factsweep.facts import ParametrizedQuery, QueryError, is_property_name
from factsweep.github import QuotaOracle, github_client
from factsweep.github.factory import CACHE_KEY as GITHUB_CACHE_KEY

from .budget import BudgetGuard, BudgetSignal
from .candidates import Exhausted, Found, candidate_from
from .errors import CallbackContractError, IterateConfigError
from .observability import IterationEventLogger
from .progress import RESERVED_LABELS, ProgressStore
from .repositories import RepositorySet
from .sorted_buffer import SortedDeliveryBuffer

if typ.TYPE_CHECKING:
    import random

    from factsweep.facts import FactStore, Value
    from factsweep.github import GitHubClient
    from factsweep.options import JudgeOptions

    from .candidates import Candidate

type Callback = cabc.Callable[[int, Value], int | cabc.Awaitable[int]]

QUERY_PARAMETERS: typ.Final = frozenset({"before", "repository"})


@dataclasses.dataclass(slots=True)
class IterationContext:
    """Collaborators and clocks of one judge run.

    Attributes
    ----------
    store
        Fact store holding both the items and the marker facts.
    options
        Run options (repositories, budgets, GitHub access).
    cache
        Per-run memo shared by collaborators, such as the GitHub client.
    epoch
        When the whole update started; the lifetime budget counts from here.
    kickoff
        When this judge started; the timeout budget counts from here.
    github
        GitHub client; built from ``options`` and memoised in ``cache``
        when not given.
    clock
        Source of the current time.
    rng
        Shuffles the repository order when set.

    A client the context builds itself is closed by :meth:`aclose`; an
    injected ``github`` client, or one already memoised in ``cache``, belongs
    to the caller.

    """

    store: FactStore
    options: JudgeOptions
    cache: typ.MutableMapping[str, object] = dataclasses.field(default_factory=dict)
    epoch: dt.datetime = dataclasses.field(default_factory=utcnow)
    kickoff: dt.datetime = dataclasses.field(default_factory=utcnow)
    github: GitHubClient | None = None
    clock: cabc.Callable[[], dt.datetime] = utcnow
    rng: random.Random | None = None
    owns_github: bool = dataclasses.field(default=False, init=False)

    @property
    def client(self) -> GitHubClient:
        """Return the GitHub client of this run."""
        if self.github is None:
            self.owns_github = GITHUB_CACHE_KEY not in self.cache
            self.github = github_client(self.options, self.cache)
        return self.github

    async def aclose(self) -> None:
        """Close the GitHub client if this context created it."""
        if not self.owns_github or self.github is None:
            return
        client, self.github, self.owns_github = self.github, None, False
        if self.cache.get(GITHUB_CACHE_KEY) is client:
            del self.cache[GITHUB_CACHE_KEY]
        await client.aclose()


@dataclasses.dataclass(frozen=True, slots=True)
class IterationSummary:
    """Outcome of one ``over`` call.

    ``seen`` counts visits per repository, restarts included. ``persisted``
    maps each repository whose cursor moved to the value written.
    """

    label: str
    repositories: tuple[int, ...] = ()
    seen: typ.Mapping[int, int] = dataclasses.field(default_factory=dict)
    restarted: frozenset[int] = frozenset()
    persisted: typ.Mapping[int, int] = dataclasses.field(default_factory=dict)
    stopped_by: BudgetSignal | None = None


class _Phase(enum.Enum):
    CONFIGURING = "configuring"
    RUNNING = "running"
    DONE = "done"


@dataclasses.dataclass(slots=True)
class _Progress:
    """Transient per-run cursor state."""

    repositories: tuple[int, ...]
    before: dict[int, int]
    starts: dict[int, int]
    seen: dict[int, int]
    restarted: set[int] = dataclasses.field(default_factory=set)
    buffers: dict[int, SortedDeliveryBuffer] = dataclasses.field(default_factory=dict)

    def active(self, repeats: int) -> list[int]:
        return [
            repo
            for repo in self.repositories
            if repo not in self.restarted and self.seen[repo] < repeats
        ]


class RepositoryIterator:
    """Configure with the chained setters, then run once with :meth:`over`."""

    def __init__(
        self,
        context: IterationContext,
        *,
        events: IterationEventLogger | None = None,
    ) -> None:
        """Bind the iterator to a run context."""
        self._context = context
        self._events = events or IterationEventLogger()
        self._phase = _Phase.CONFIGURING
        self._label: str | None = None
        self._query: ParametrizedQuery | None = None
        self._sort_by: str | None = None
        self._repeats = 1
        self._since: int | None = None
        self._quota_aware = True
        self._lifetime_aware = True
        self._timeout_aware = True

    def _configurable(self) -> None:
        if self._phase is not _Phase.CONFIGURING:
            raise IterateConfigError.already_used()

    def as_(self, label: str) -> typ.Self:
        """Name the iteration; the name is the marker property it writes."""
        self._configurable()
        if self._label is not None:
            raise IterateConfigError.already_set("as")
        if label is None:
            raise IterateConfigError.none_value("label")
        if not is_property_name(label):
            raise IterateConfigError.bad_label(label)
        if label in RESERVED_LABELS:
            raise IterateConfigError.reserved_label(label)
        self._label = label
        return self

    def by(self, query: str | ParametrizedQuery) -> typ.Self:
        """Set the query that suggests the next item after ``$before``."""
        self._configurable()
        if self._query is not None:
            raise IterateConfigError.already_set("by")
        if query is None:
            raise IterateConfigError.none_value("query")
        if isinstance(query, str):
            try:
                query = ParametrizedQuery.parse(query)
            except QueryError as exc:
                raise IterateConfigError.bad_query(exc) from exc
        unknown = query.parameters - QUERY_PARAMETERS
        if unknown:
            raise IterateConfigError.unknown_parameters(unknown)
        self._query = query
        return self

    def sort_by(self, prop: str) -> typ.Self:
        """Deliver the query's matches in ascending order of ``prop``."""
        self._configurable()
        if self._sort_by is not None:
            raise IterateConfigError.already_set("sort_by")
        if prop is None:
            raise IterateConfigError.none_value("sort_by")
        if not is_property_name(prop):
            raise IterateConfigError.bad_property(prop)
        self._sort_by = prop
        return self

    def repeats(self, repeats: int) -> typ.Self:
        """Limit how many items each repository yields per run."""
        self._configurable()
        if repeats is None:
            raise IterateConfigError.none_value("repeats")
        if not isinstance(repeats, int) or isinstance(repeats, bool):
            raise IterateConfigError.not_integer("repeats", repeats)
        if repeats < 1:
            raise IterateConfigError.not_positive("repeats", repeats)
        self._repeats = repeats
        return self

    def since(self, value: int) -> typ.Self:
        """Set the cursor used when no marker exists and after a restart."""
        self._configurable()
        if self._since is not None:
            raise IterateConfigError.already_set("since")
        if value is None:
            raise IterateConfigError.none_value("since")
        if not isinstance(value, int) or isinstance(value, bool):
            raise IterateConfigError.not_integer("since", value)
        self._since = value
        return self

    def quota_unaware(self) -> typ.Self:
        """Ignore the GitHub request quota."""
        self._configurable()
        self._quota_aware = False
        return self

    def lifetime_unaware(self) -> typ.Self:
        """Ignore the lifetime budget of the update."""
        self._configurable()
        self._lifetime_aware = False
        return self

    def timeout_unaware(self) -> typ.Self:
        """Ignore the timeout budget of this judge."""
        self._configurable()
        self._timeout_aware = False
        return self

    @property
    def _initial(self) -> int:
        return 0 if self._since is None else self._since

    async def over(self, callback: Callback) -> IterationSummary:
        """Run the sweep loop, calling ``callback(repository, item)``.

        The callback may be sync or async and must return the new cursor as
        an ``int``.

        Raises
        ------
        IterateConfigError
            If ``as_`` or ``by`` was never called, or the iterator already ran.
        CallbackContractError
            If the callback returns anything but an ``int``. Nothing is
            persisted for the run.

        """
        if self._phase is not _Phase.CONFIGURING:
            raise IterateConfigError.already_used()
        if self._label is None:
            raise IterateConfigError.missing("as")
        if self._query is None:
            raise IterateConfigError.missing("by")
        label, query = self._label, self._query
        self._phase = _Phase.RUNNING
        started = self._context.clock()
        try:
            guard = self._guard()
            signal = await self._check_budget(guard)
            if signal is not None:
                self._events.log_run_skipped(label=label, signal=signal)
                return IterationSummary(label=label, stopped_by=signal)
            summary = await self._run(label, query, callback, guard)
        except Exception as exc:
            self._events.log_run_failed(
                label=label, error=exc, duration=self._context.clock() - started
            )
            raise
        finally:
            self._phase = _Phase.DONE
            await self._context.aclose()
        self._events.log_run_completed(
            summary=summary, duration=self._context.clock() - started
        )
        return summary

    def _guard(self) -> BudgetGuard:
        context = self._context
        return BudgetGuard(
            context.options, QuotaOracle(context.client), clock=context.clock
        )

    async def _check_budget(self, guard: BudgetGuard) -> BudgetSignal | None:
        return await guard.check(
            quota_aware=self._quota_aware,
            lifetime_aware=self._lifetime_aware,
            timeout_aware=self._timeout_aware,
            epoch=self._context.epoch,
            kickoff=self._context.kickoff,
        )

    async def _run(
        self,
        label: str,
        query: ParametrizedQuery,
        callback: Callback,
        guard: BudgetGuard,
    ) -> IterationSummary:
        context = self._context
        repositories = await RepositorySet(
            context.options, context.client, context.cache, rng=context.rng
        ).resolve()
        self._events.log_run_started(label=label, repositories=len(repositories))
        markers = ProgressStore(context.store)
        before = {
            repo: await markers.read(label, repo, self._initial)
            for repo in repositories
        }
        state = _Progress(
            repositories=tuple(repositories),
            before=before,
            starts=dict(before),
            seen=dict.fromkeys(repositories, 0),
        )
        stopped_by = await self._sweep(label, query, callback, guard, state)
        persisted = await self._persist(label, markers, state)
        return IterationSummary(
            label=label,
            repositories=state.repositories,
            seen=dict(state.seen),
            restarted=frozenset(state.restarted),
            persisted=persisted,
            stopped_by=stopped_by,
        )

    async def _sweep(
        self,
        label: str,
        query: ParametrizedQuery,
        callback: Callback,
        guard: BudgetGuard,
        state: _Progress,
    ) -> BudgetSignal | None:
        sweep = 0
        while state.active(self._repeats):
            sweep += 1
            signal = await self._check_budget(guard)
            if signal is not None:
                self._events.log_sweep_stopped(label=label, sweep=sweep, signal=signal)
                return signal
            for repo in state.active(self._repeats):
                signal = await self._check_budget(guard)
                if signal is not None:
                    self._events.log_repository_skipped(
                        label=label, repository=repo, signal=signal
                    )
                    return signal
                await self._visit(label, query, callback, state, repo)
        return None

    async def _visit(
        self,
        label: str,
        query: ParametrizedQuery,
        callback: Callback,
        state: _Progress,
        repo: int,
    ) -> None:
        current = state.before[repo]
        match await self._next_candidate(query, state, repo):
            case Exhausted():
                self._events.log_repository_restarted(
                    label=label, repository=repo, before=current, since=self._initial
                )
                state.restarted.add(repo)
                state.before[repo] = self._initial
                state.buffers.pop(repo, None)
            case Found(value=value):
                self._events.log_item_delivered(
                    label=label, repository=repo, before=current, value=value
                )
                state.before[repo] = await _deliver(callback, repo, value)
        state.seen[repo] += 1

    async def _next_candidate(
        self, query: ParametrizedQuery, state: _Progress, repo: int
    ) -> Candidate:
        store = self._context.store
        bindings = {"before": state.before[repo], "repository": repo}
        if self._sort_by is None:
            return candidate_from(await store.query(query).one(**bindings))
        buffer = state.buffers.get(repo)
        if buffer is None:
            facts = await store.query(query).each(**bindings)
            buffer = SortedDeliveryBuffer.from_facts(facts, self._sort_by)
            state.buffers[repo] = buffer
        return buffer.next_candidate()

    async def _persist(
        self, label: str, markers: ProgressStore, state: _Progress
    ) -> dict[int, int]:
        persisted: dict[int, int] = {}
        for repo in state.repositories:
            value = state.before[repo]
            if value == state.starts[repo]:
                continue
            await markers.write(label, repo, value)
            persisted[repo] = value
            self._events.log_marker_persisted(label=label, repository=repo, value=value)
        return persisted


async def _deliver(callback: Callback, repo: int, value: Value) -> int:
    result = callback(repo, value)
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, int) or isinstance(result, bool):
        raise CallbackContractError.wrong_return(result)
    return result


def iterate(
    store: FactStore,
    options: JudgeOptions,
    cache: typ.MutableMapping[str, object] | None = None,
    *,
    epoch: dt.datetime | None = None,
    kickoff: dt.datetime | None = None,
    github: GitHubClient | None = None,
    clock: cabc.Callable[[], dt.datetime] = utcnow,
    rng: random.Random | None = None,
    events: IterationEventLogger | None = None,
) -> RepositoryIterator:
    """Build a :class:`RepositoryIterator` for one judge run.

    ``epoch`` and ``kickoff`` default to the current time from ``clock``.
    """
    now = clock()
    context = IterationContext(
        store=store,
        options=options,
        cache={} if cache is None else cache,
        epoch=now if epoch is None else epoch,
        kickoff=now if kickoff is None else kickoff,
        github=github,
        clock=clock,
        rng=rng,
    )
    return RepositoryIterator(context, events=events)
