"""S-expression query language over fact snapshots."""

from __future__ import annotations

from .parser import Param, Symbol, Term, parse_query
from .template import ParametrizedQuery
from .terms import (
    OPERATORS,
    Scope,
    evaluate,
    is_truthy,
    matches,
    parameters,
    required_equalities,
    validate,
)

__all__ = [
    "OPERATORS",
    "Param",
    "ParametrizedQuery",
    "Scope",
    "Symbol",
    "Term",
    "evaluate",
    "is_truthy",
    "matches",
    "parameters",
    "parse_query",
    "required_equalities",
    "validate",
]
