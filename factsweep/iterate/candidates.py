"""Outcome of asking a repository for its next item."""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    from factsweep.facts import Value


@dataclasses.dataclass(frozen=True, slots=True)
class Found:
    """The query suggested ``value`` as the next item."""

    value: Value


@dataclasses.dataclass(frozen=True, slots=True)
class Exhausted:
    """The query had nothing after the current cursor."""


type Candidate = Found | Exhausted


def candidate_from(result: object) -> Candidate:
    """Wrap a raw query result, treating None and False as exhausted."""
    if result is None or result is False:
        return Exhausted()
    return Found(typ.cast("Value", result))
