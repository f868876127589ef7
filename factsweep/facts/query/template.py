"""Parsed query templates with parameters bound by value."""

from __future__ import annotations

import dataclasses
import types
import typing as typ

from .parser import parse_query
from .terms import parameters as term_parameters
from .terms import validate

if typ.TYPE_CHECKING:
    from ..models import Value
    from .parser import Term


@dataclasses.dataclass(frozen=True, slots=True)
class ParametrizedQuery:
    """A query term parsed once and a mapping of bound parameters.

    Binding never splices text into the template: values travel alongside
    the term and are looked up when a ``$name`` operand is evaluated.

    Examples
    --------
    >>> query = ParametrizedQuery.parse("(and (eq repository $repository))")
    >>> sorted(query.parameters)
    ['repository']
    >>> query.bind(repository=680).params["repository"]
    680

    """

    term: Term
    params: typ.Mapping[str, Value] = dataclasses.field(
        default_factory=lambda: types.MappingProxyType({})
    )

    @classmethod
    def parse(cls, template: str) -> ParametrizedQuery:
        """Parse and validate ``template`` with no parameters bound."""
        return cls(validate(parse_query(template)))

    @property
    def parameters(self) -> frozenset[str]:
        """Names of every ``$param`` the template references."""
        return term_parameters(self.term)

    def bind(self, **params: Value) -> ParametrizedQuery:
        """Return a copy with ``params`` merged over the current bindings."""
        merged = {**self.params, **params}
        return ParametrizedQuery(self.term, types.MappingProxyType(merged))

    def __str__(self) -> str:
        """Render the template text."""
        return str(self.term)
