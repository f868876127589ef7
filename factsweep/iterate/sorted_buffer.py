"""Ascending cursor over the sort property values of matching facts."""

from __future__ import annotations

import dataclasses
import typing as typ

from .candidates import Candidate, Exhausted, Found
from .errors import SortKeyError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from factsweep.facts import Fact, Value


@dataclasses.dataclass(slots=True)
class SortedDeliveryBuffer:
    """Distinct values in ascending order plus the position of the next one.

    The buffer is built once per repository per run and only moves forward.
    """

    values: tuple[Value, ...]
    position: int = 0

    @classmethod
    def from_facts(cls, facts: cabc.Iterable[Fact], prop: str) -> SortedDeliveryBuffer:
        """Collect the first ``prop`` value of each fact, dedupe and sort.

        Facts without ``prop`` are skipped.

        Raises
        ------
        SortKeyError
            If the collected values cannot be ordered against each other.

        """
        collected = {
            value for fact in facts if (value := fact.first(prop)) is not None
        }
        try:
            ordered = tuple(sorted(typ.cast("set[typ.Any]", collected)))
        except TypeError as exc:
            kinds = (type(value).__name__ for value in collected)
            raise SortKeyError.unorderable(prop, kinds) from exc
        return cls(ordered)

    @property
    def remaining(self) -> int:
        """Number of values not delivered yet."""
        return len(self.values) - self.position

    @property
    def exhausted(self) -> bool:
        """True once every value has been delivered."""
        return self.position >= len(self.values)

    def next_candidate(self) -> Candidate:
        """Return the next value and advance, or :data:`Exhausted`."""
        if self.exhausted:
            return Exhausted()
        value = self.values[self.position]
        self.position += 1
        return Found(value)
