"""Durable per-repository progress markers.

Each repository owns at most one marker fact::

    kind=iterate source=github repository=<id> <label>=<cursor> ...

Every named iteration keeps its cursor in its own label property, so many
judges share the same marker fact without touching each other's progress.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from factsweep.facts import ParametrizedQuery
from factsweep.facts.query import Param, Symbol, Term

if typ.TYPE_CHECKING:
    from factsweep.facts import Fact, FactStore

MARKER_KIND: typ.Final = "iterate"
MARKER_SOURCE: typ.Final = "github"
RESERVED_LABELS: typ.Final = frozenset({"kind", "source", "repository"})

_MARKER_FILTER = Term(
    "and",
    (
        Term("eq", (Symbol("kind"), MARKER_KIND)),
        Term("eq", (Symbol("source"), MARKER_SOURCE)),
    ),
)
_REPOSITORY_FILTER = Term(
    "and",
    (
        *_MARKER_FILTER.operands,
        Term("eq", (Symbol("repository"), Param("repository"))),
    ),
)


@dataclasses.dataclass(frozen=True, slots=True)
class Marker:
    """Snapshot of one repository's marker fact."""

    fact_id: int
    repository: int
    labels: typ.Mapping[str, int]


def _marker_from_fact(fact: Fact) -> Marker:
    labels = {
        name: values[0]
        for name, values in fact.properties.items()
        if name not in RESERVED_LABELS and isinstance(values[0], int)
    }
    return Marker(
        fact_id=fact.id,
        repository=typ.cast("int", fact.first("repository")),
        labels=labels,
    )


class ProgressStore:
    """Read and write iteration cursors on marker facts."""

    def __init__(self, store: FactStore) -> None:
        """Bind the progress store to a fact store."""
        self._store = store

    async def read(self, label: str, repository: int, since: int) -> int:
        """Return the persisted cursor of ``label``, or ``since`` when absent."""
        query = ParametrizedQuery(
            Term("agg", (_REPOSITORY_FILTER, Term("first", (Symbol(label),))))
        )
        value = await self._store.query(query).one(repository=repository)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return since

    async def write(self, label: str, repository: int, value: int) -> Fact:
        """Store ``value`` as the cursor of ``label`` on the marker fact.

        The marker fact is created on first write. Other labels on it are
        left untouched, and the whole update commits or rolls back at once.
        """
        async with self._store.transaction() as tx:
            marker = await tx.if_absent(
                {
                    "kind": MARKER_KIND,
                    "source": MARKER_SOURCE,
                    "repository": repository,
                },
                always=True,
            )
            fact_id = typ.cast("Fact", marker).id
            return await tx.overwrite(fact_id, label, value)

    async def markers(self, label: str | None = None) -> list[Marker]:
        """List marker facts, optionally only those carrying ``label``."""
        facts = await self._store.query(ParametrizedQuery(_MARKER_FILTER)).each()
        markers = [_marker_from_fact(fact) for fact in facts if "repository" in fact]
        if label is None:
            return markers
        return [marker for marker in markers if label in marker.labels]
