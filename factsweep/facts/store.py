"""Async fact store backed by SQLAlchemy.

Every public operation of :class:`FactStore` runs in its own transaction.
Use :meth:`FactStore.transaction` to group several operations so they
commit or roll back together.
"""

from __future__ import annotations

import collections
import collections.abc as cabc
import contextlib
import typing as typ

from sqlalchemy import and_, delete, func, or_, select

from .errors import FactNotFoundError, InvalidPropertyError
from .models import Fact, ensure_property_name
from .query import (
    ParametrizedQuery,
    Scope,
    Symbol,
    Term,
    evaluate,
    matches,
    required_equalities,
)
from .storage import FactRecord, FactValueRecord, ValueKind

if typ.TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .models import Value
    from .query.terms import Result

type Equalities = cabc.Sequence[tuple[str, Value]]
type FactLoader = cabc.Callable[[Equalities], cabc.Awaitable[tuple[Fact, ...]]]


def _value_equals(value: Value) -> ColumnElement[bool]:
    if isinstance(value, str):
        return and_(
            FactValueRecord.kind == ValueKind.STR, FactValueRecord.str_value == value
        )
    return or_(
        and_(FactValueRecord.kind == ValueKind.INT, FactValueRecord.int_value == value),
        and_(
            FactValueRecord.kind == ValueKind.FLOAT,
            FactValueRecord.float_value == value,
        ),
    )


def _fact_ids(where: Equalities) -> Select[tuple[int]]:
    """Select the ids of facts carrying every ``(name, value)`` pair."""
    statement = select(FactRecord.id)
    for name, value in where:
        statement = statement.where(
            FactRecord.id.in_(
                select(FactValueRecord.fact_id).where(
                    FactValueRecord.name == name, _value_equals(value)
                )
            )
        )
    return statement


def _snapshot(
    fact_ids: cabc.Iterable[int], rows: cabc.Iterable[FactValueRecord]
) -> tuple[Fact, ...]:
    values: dict[int, dict[str, list[Value]]] = {
        fact_id: collections.defaultdict(list) for fact_id in fact_ids
    }
    for row in rows:
        values[row.fact_id][row.name].append(row.decode())
    return tuple(
        Fact(
            fact_id,
            {name: tuple(items) for name, items in properties.items()},
        )
        for fact_id, properties in values.items()
    )


class FactQuery:
    """A parsed query bound to the facts it runs against.

    ``each`` returns the facts the term matches; ``one`` evaluates the term
    once over the whole set, which is how aggregates are read.

    Terms are evaluated in memory. Property equalities the term requires
    (see :func:`required_equalities`) are handed to the loader so only
    facts that can possibly match leave the database.
    """

    def __init__(self, query: ParametrizedQuery, load: FactLoader) -> None:
        """Store the query and the loader that produces fact snapshots."""
        self._query = query
        self._load = load

    @property
    def query(self) -> ParametrizedQuery:
        """Return the underlying parametrized query."""
        return self._query

    async def each(self, **params: Value) -> list[Fact]:
        """Return matching facts ordered by id."""
        bound = self._query.bind(**params)
        facts = await self._load(required_equalities(bound.term, bound.params))
        scope = Scope(facts, bound.params)
        return [fact for fact in facts if matches(bound.term, fact, scope)]

    async def one(self, **params: Value) -> Result:
        """Evaluate the term over the whole fact set and return its value."""
        bound = self._query.bind(**params)
        where: Equalities = ()
        if bound.term.operator == "agg" and isinstance(bound.term.operands[0], Term):
            where = required_equalities(bound.term.operands[0], bound.params)
        facts = await self._load(where)
        return evaluate(bound.term, None, Scope(facts, bound.params))


class FactTransaction:
    """Fact operations sharing one session and one transaction."""

    def __init__(self, session: AsyncSession) -> None:
        """Bind the transaction to an open session."""
        self._session = session

    async def _require(self, fact_id: int) -> FactRecord:
        record = await self._session.get(FactRecord, fact_id)
        if record is None:
            raise FactNotFoundError(fact_id)
        return record

    async def _next_position(self, fact_id: int, name: str) -> int:
        current = await self._session.scalar(
            select(func.max(FactValueRecord.position)).where(
                FactValueRecord.fact_id == fact_id, FactValueRecord.name == name
            )
        )
        return 0 if current is None else current + 1

    async def facts(self, where: Equalities = ()) -> tuple[Fact, ...]:
        """Load a snapshot of facts ordered by id.

        ``where`` limits the snapshot to facts holding every given
        ``(property, value)`` pair; by default every fact is loaded.
        """
        ids = _fact_ids(where)
        fact_ids = (
            await self._session.scalars(ids.order_by(FactRecord.id))
        ).all()
        values = select(FactValueRecord).order_by(
            FactValueRecord.fact_id, FactValueRecord.position, FactValueRecord.id
        )
        if where:
            values = values.where(FactValueRecord.fact_id.in_(ids))
        rows = (await self._session.scalars(values)).all()
        return _snapshot(fact_ids, rows)

    async def fact(self, fact_id: int) -> Fact:
        """Load one fact by id."""
        await self._require(fact_id)
        rows = (
            await self._session.scalars(
                select(FactValueRecord)
                .where(FactValueRecord.fact_id == fact_id)
                .order_by(FactValueRecord.position, FactValueRecord.id)
            )
        ).all()
        return _snapshot([fact_id], rows)[0]

    async def size(self) -> int:
        """Return the number of stored facts."""
        count = await self._session.scalar(select(func.count(FactRecord.id)))
        return int(count or 0)

    async def insert(self, **props: Value) -> Fact:
        """Create a fact with one value per keyword argument."""
        for name in props:
            ensure_property_name(name)
        record = FactRecord()
        self._session.add(record)
        await self._session.flush()
        self._session.add_all(
            FactValueRecord.encode(record.id, name, 0, value)
            for name, value in props.items()
        )
        await self._session.flush()
        return await self.fact(record.id)

    async def add(self, fact_id: int, name: str, value: Value) -> Fact:
        """Append ``value`` to property ``name`` of the fact."""
        ensure_property_name(name)
        await self._require(fact_id)
        position = await self._next_position(fact_id, name)
        self._session.add(FactValueRecord.encode(fact_id, name, position, value))
        await self._session.flush()
        return await self.fact(fact_id)

    async def overwrite(self, fact_id: int, name: str, value: Value) -> Fact:
        """Replace every value of ``name`` with the single ``value``.

        Overwriting with the value already stored leaves the rows intact.
        """
        ensure_property_name(name)
        current = await self.fact(fact_id)
        if current.get(name) == (value,):
            return current
        replacement = FactValueRecord.encode(fact_id, name, 0, value)
        await self._session.execute(
            delete(FactValueRecord).where(
                FactValueRecord.fact_id == fact_id, FactValueRecord.name == name
            )
        )
        self._session.add(replacement)
        await self._session.flush()
        return await self.fact(fact_id)

    async def if_absent(
        self, props: typ.Mapping[str, Value], *, always: bool = False
    ) -> Fact | None:
        """Insert a fact with ``props`` unless an equal one already exists.

        Returns the new fact. When a fact with all of ``props`` exists,
        returns it if ``always`` is set and None otherwise.
        """
        if not props:
            raise InvalidPropertyError.no_properties()
        for name in props:
            ensure_property_name(name)
        term = Term(
            "and",
            tuple(Term("eq", (Symbol(name), value)) for name, value in props.items()),
        )
        existing = await self.query(ParametrizedQuery(term)).each()
        if existing:
            return existing[0] if always else None
        return await self.insert(**props)

    def query(self, expression: str | ParametrizedQuery) -> FactQuery:
        """Return a query over this transaction's view of the facts."""
        query = (
            ParametrizedQuery.parse(expression)
            if isinstance(expression, str)
            else expression
        )
        return FactQuery(query, self.facts)


class FactStore:
    """Entry point to the fact store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Store the session factory used for every operation."""
        self._session_factory = session_factory

    @contextlib.asynccontextmanager
    async def transaction(self) -> cabc.AsyncIterator[FactTransaction]:
        """Yield a :class:`FactTransaction`; commit on exit, roll back on error."""
        async with self._session_factory() as session, session.begin():
            yield FactTransaction(session)

    async def facts(self, where: Equalities = ()) -> tuple[Fact, ...]:
        """Load a snapshot of facts ordered by id, limited by ``where``."""
        async with self.transaction() as tx:
            return await tx.facts(where)

    async def size(self) -> int:
        """Return the number of stored facts."""
        async with self.transaction() as tx:
            return await tx.size()

    async def insert(self, **props: Value) -> Fact:
        """Create a fact with one value per keyword argument."""
        async with self.transaction() as tx:
            return await tx.insert(**props)

    async def add(self, fact_id: int, name: str, value: Value) -> Fact:
        """Append ``value`` to property ``name`` of the fact."""
        async with self.transaction() as tx:
            return await tx.add(fact_id, name, value)

    async def overwrite(self, fact_id: int, name: str, value: Value) -> Fact:
        """Replace every value of ``name`` with the single ``value``."""
        async with self.transaction() as tx:
            return await tx.overwrite(fact_id, name, value)

    async def if_absent(
        self, props: typ.Mapping[str, Value], *, always: bool = False
    ) -> Fact | None:
        """Insert a fact with ``props`` unless an equal one already exists."""
        async with self.transaction() as tx:
            return await tx.if_absent(props, always=always)

    def query(self, expression: str | ParametrizedQuery) -> FactQuery:
        """Return a query that loads a fresh snapshot on every run."""
        query = (
            ParametrizedQuery.parse(expression)
            if isinstance(expression, str)
            else expression
        )
        return FactQuery(query, self.facts)
