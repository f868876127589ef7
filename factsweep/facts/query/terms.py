"""Evaluation of parsed query terms against fact snapshots.

Terms are evaluated in two positions. Predicates (``eq``, ``and``,
``exists`` ...) are evaluated against one fact and answer whether it
matches. Aggregates (``agg``, ``max``, ``count`` ...) are evaluated against
the whole fact set in scope; ``agg`` narrows that set with a predicate
before evaluating its inner aggregate.

Operands resolve to lists of values: a symbol yields every value of the
property on the current fact, a parameter or literal yields one value.
Comparisons succeed when any pair of values satisfies them.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import datetime as dt
import operator
import typing as typ

from ..errors import MissingQueryParameterError, QueryArityError, UnknownOperatorError
from .parser import Param, Symbol, Term

if typ.TYPE_CHECKING:
    from ..models import Fact, Value
    from .parser import Operand

type Result = Value | bool | None
type _Handler = cabc.Callable[[Term, Fact | None, Scope], Result]


@dataclasses.dataclass(frozen=True, slots=True)
class Scope:
    """Facts visible to aggregates and the parameters bound for a query."""

    facts: tuple[Fact, ...]
    params: typ.Mapping[str, Value] = dataclasses.field(default_factory=dict)

    def narrow(self, facts: cabc.Iterable[Fact]) -> Scope:
        """Return a scope over ``facts`` with the same parameters."""
        return Scope(tuple(facts), self.params)


@dataclasses.dataclass(frozen=True, slots=True)
class _Operator:
    handler: _Handler
    min_operands: int
    max_operands: int | None

    def describe_arity(self) -> str:
        if self.max_operands is None:
            return f"at least {self.min_operands}"
        if self.min_operands == self.max_operands:
            return str(self.min_operands)
        return f"{self.min_operands} to {self.max_operands}"


def is_truthy(result: object) -> bool:
    """Interpret an evaluation result as a predicate outcome."""
    if result is None:
        return False
    if isinstance(result, bool):
        return result
    return True


def _values(operand: Operand, fact: Fact | None, scope: Scope) -> list[Value]:
    """Resolve ``operand`` to the list of values it denotes (maybe empty)."""
    match operand:
        case Term():
            result = evaluate(operand, fact, scope)
            if result is None or isinstance(result, bool):
                return []
            return [result]
        case Symbol(name=name):
            if fact is None:
                return []
            return list(fact.get(name) or ())
        case Param(name=name):
            try:
                return [scope.params[name]]
            except KeyError:
                raise MissingQueryParameterError(name) from None
        case _:
            return [operand]


def _predicate(operand: Operand, fact: Fact | None, scope: Scope) -> bool:
    if isinstance(operand, Term):
        return is_truthy(evaluate(operand, fact, scope))
    return bool(_values(operand, fact, scope))


def _always(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return True


def _never(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return False


def _not(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return not _predicate(term.operands[0], fact, scope)


def _and(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return all(_predicate(operand, fact, scope) for operand in term.operands)


def _or(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return any(_predicate(operand, fact, scope) for operand in term.operands)


def _exists(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return bool(_values(term.operands[0], fact, scope))


def _absent(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return not _values(term.operands[0], fact, scope)


def _comparison(compare: cabc.Callable[[typ.Any, typ.Any], bool]) -> _Handler:
    def handler(term: Term, fact: Fact | None, scope: Scope) -> Result:
        lefts = _values(term.operands[0], fact, scope)
        rights = _values(term.operands[1], fact, scope)
        for left in lefts:
            for right in rights:
                try:
                    if compare(left, right):
                        return True
                except TypeError:
                    continue
        return False

    return handler


def _divide(left: typ.Any, right: typ.Any) -> typ.Any:
    if right == 0:
        return None
    if isinstance(left, int) and isinstance(right, int):
        return left // right
    return left / right


def _shift(
    apply: cabc.Callable[[typ.Any, typ.Any], typ.Any],
) -> cabc.Callable[[typ.Any, typ.Any], typ.Any]:
    """Allow ``datetime +/- seconds`` alongside plain arithmetic."""

    def combine(left: typ.Any, right: typ.Any) -> typ.Any:
        if isinstance(left, dt.datetime) and isinstance(right, int | float):
            return apply(left, dt.timedelta(seconds=right))
        return apply(left, right)

    return combine


def _arithmetic(apply: cabc.Callable[[typ.Any, typ.Any], typ.Any]) -> _Handler:
    def handler(term: Term, fact: Fact | None, scope: Scope) -> Result:
        lefts = _values(term.operands[0], fact, scope)
        rights = _values(term.operands[1], fact, scope)
        if not lefts or not rights:
            return None
        return apply(lefts[0], rights[0])

    return handler


def _agg(term: Term, fact: Fact | None, scope: Scope) -> Result:
    condition, inner = term.operands
    matching = (item for item in scope.facts if _predicate(condition, item, scope))
    narrowed = scope.narrow(matching)
    if isinstance(inner, Term):
        return evaluate(inner, None, narrowed)
    values = _values(inner, None, narrowed)
    return values[0] if values else None


def _collect(term: Term, scope: Scope) -> list[Value]:
    collected: list[Value] = []
    for item in scope.facts:
        collected.extend(_values(term.operands[0], item, scope))
    return collected


def _max(term: Term, fact: Fact | None, scope: Scope) -> Result:
    values = _collect(term, scope)
    return max(values) if values else None


def _min(term: Term, fact: Fact | None, scope: Scope) -> Result:
    values = _collect(term, scope)
    return min(values) if values else None


def _sum(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return sum(typ.cast("list[int | float]", _collect(term, scope)), 0)


def _count(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return len(scope.facts)


def _first(term: Term, fact: Fact | None, scope: Scope) -> Result:
    for item in scope.facts:
        values = _values(term.operands[0], item, scope)
        if values:
            return values[0]
    return None


def _empty(term: Term, fact: Fact | None, scope: Scope) -> Result:
    return not any(_predicate(term.operands[0], item, scope) for item in scope.facts)


OPERATORS: typ.Final[typ.Mapping[str, _Operator]] = {
    "always": _Operator(_always, 0, 0),
    "never": _Operator(_never, 0, 0),
    "not": _Operator(_not, 1, 1),
    "and": _Operator(_and, 1, None),
    "or": _Operator(_or, 1, None),
    "exists": _Operator(_exists, 1, 1),
    "absent": _Operator(_absent, 1, 1),
    "eq": _Operator(_comparison(operator.eq), 2, 2),
    "gt": _Operator(_comparison(operator.gt), 2, 2),
    "lt": _Operator(_comparison(operator.lt), 2, 2),
    "gte": _Operator(_comparison(operator.ge), 2, 2),
    "lte": _Operator(_comparison(operator.le), 2, 2),
    "plus": _Operator(_arithmetic(_shift(operator.add)), 2, 2),
    "minus": _Operator(_arithmetic(_shift(operator.sub)), 2, 2),
    "times": _Operator(_arithmetic(operator.mul), 2, 2),
    "div": _Operator(_arithmetic(_divide), 2, 2),
    "agg": _Operator(_agg, 2, 2),
    "max": _Operator(_max, 1, 1),
    "min": _Operator(_min, 1, 1),
    "sum": _Operator(_sum, 1, 1),
    "count": _Operator(_count, 0, 0),
    "first": _Operator(_first, 1, 1),
    "empty": _Operator(_empty, 1, 1),
}


def validate(term: Term) -> Term:
    """Check operators and operand counts of ``term`` recursively.

    Raises
    ------
    UnknownOperatorError
        If any term names an operator outside :data:`OPERATORS`.
    QueryArityError
        If any term has the wrong number of operands.

    """
    entry = OPERATORS.get(term.operator)
    if entry is None:
        raise UnknownOperatorError(term.operator)
    count = len(term.operands)
    too_many = entry.max_operands is not None and count > entry.max_operands
    if count < entry.min_operands or too_many:
        raise QueryArityError(term.operator, entry.describe_arity(), count)
    for operand in term.operands:
        if isinstance(operand, Term):
            validate(operand)
    return term


def parameters(term: Term) -> frozenset[str]:
    """Return the names of all ``$params`` referenced by ``term``."""
    names: set[str] = set()
    for operand in term.operands:
        if isinstance(operand, Param):
            names.add(operand.name)
        elif isinstance(operand, Term):
            names |= parameters(operand)
    return frozenset(names)


def _exact_value(operand: Operand, params: typ.Mapping[str, Value]) -> Value | None:
    match operand:
        case Param(name=name):
            value = params.get(name)
        case Term() | Symbol():
            return None
        case _:
            value = operand
    if isinstance(value, bool) or not isinstance(value, int | str):
        return None
    return value


_SCOPE_READERS: typ.Final = frozenset(
    {"agg", "max", "min", "sum", "count", "first", "empty"}
)


def _reads_scope(term: Term) -> bool:
    return term.operator in _SCOPE_READERS or any(
        isinstance(operand, Term) and _reads_scope(operand)
        for operand in term.operands
    )


def required_equalities(
    term: Term, params: typ.Mapping[str, Value]
) -> tuple[tuple[str, Value], ...]:
    """Return ``(property, value)`` pairs every fact matching ``term`` must carry.

    Only ``eq`` between a property and an int or string (literal or bound
    parameter) counts, alone or under ``and``. Other predicates contribute
    nothing, so the result is a necessary condition, never a sufficient one.
    A term that aggregates anywhere depends on the whole fact set and yields
    no pairs.
    """
    if _reads_scope(term):
        return ()
    return _equalities(term, params)


def _equalities(
    term: Term, params: typ.Mapping[str, Value]
) -> tuple[tuple[str, Value], ...]:
    if term.operator == "and":
        return tuple(
            pair
            for operand in term.operands
            if isinstance(operand, Term)
            for pair in _equalities(operand, params)
        )
    if term.operator != "eq" or len(term.operands) != 2:
        return ()
    left, right = term.operands
    for symbol, other in ((left, right), (right, left)):
        if isinstance(symbol, Symbol):
            value = _exact_value(other, params)
            if value is not None:
                return ((symbol.name, value),)
    return ()


def evaluate(term: Term, fact: Fact | None, scope: Scope) -> Result:
    """Evaluate ``term`` for ``fact`` (None for set-level evaluation)."""
    entry = OPERATORS.get(term.operator)
    if entry is None:
        raise UnknownOperatorError(term.operator)
    return entry.handler(term, fact, scope)


def matches(term: Term, fact: Fact, scope: Scope) -> bool:
    """Return True when ``fact`` satisfies the predicate ``term``."""
    return is_truthy(evaluate(term, fact, scope))
