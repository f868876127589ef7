"""Typed domain models for facts."""

from __future__ import annotations

import dataclasses
import datetime as dt
import re
import types
import typing as typ

from .errors import InvalidPropertyError

type Value = int | float | str | dt.datetime

PROPERTY_NAME_PATTERN = re.compile(r"[_a-z][a-zA-Z0-9_]*")


def is_property_name(name: object) -> bool:
    """Return True when ``name`` is a valid property name."""
    return isinstance(name, str) and PROPERTY_NAME_PATTERN.fullmatch(name) is not None


def ensure_property_name(name: object) -> str:
    """Return ``name`` unchanged, or raise when it is not a property name."""
    if not is_property_name(name):
        raise InvalidPropertyError.bad_name(name)
    return typ.cast("str", name)


@dataclasses.dataclass(frozen=True, slots=True)
class Fact:
    """Immutable snapshot of a stored fact.

    Properties are multi-valued: each name maps to a non-empty tuple of
    values in insertion order. Reading an absent property yields ``None``.
    """

    id: int
    properties: typ.Mapping[str, tuple[Value, ...]] = dataclasses.field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        """Freeze the property mapping."""
        object.__setattr__(
            self, "properties", types.MappingProxyType(dict(self.properties))
        )

    def get(self, name: str) -> tuple[Value, ...] | None:
        """Return all values of ``name`` or None when absent."""
        return self.properties.get(name)

    def first(self, name: str) -> Value | None:
        """Return the first value of ``name`` or None when absent."""
        values = self.properties.get(name)
        return values[0] if values else None

    def __getitem__(self, name: str) -> tuple[Value, ...] | None:
        """Mirror :meth:`get` so facts read like mappings."""
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        """Return True when the fact carries property ``name``."""
        return name in self.properties
