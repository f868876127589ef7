"""Parser for the s-expression fact query language.

A query is a single term::

    (and (eq kind 'iterate') (gt issue $before))

Operands are nested terms, bare symbols (property references), ``$name``
parameters, integers, floats, quoted strings and ISO-8601 timestamps.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import re
import typing as typ

from ..errors import QuerySyntaxError

if typ.TYPE_CHECKING:
    from ..models import Value

_TIMESTAMP = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})"
)
_INTEGER = re.compile(r"[+-]?\d+")
_FLOAT = re.compile(r"[+-]?\d+\.\d+(?:[eE][+-]?\d+)?")
_SYMBOL = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_PARAM = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")

_DELIMITERS = frozenset("()'\"")
_QUOTES = frozenset("'\"")


@dataclasses.dataclass(frozen=True, slots=True)
class Symbol:
    """Reference to a fact property by name."""

    name: str


@dataclasses.dataclass(frozen=True, slots=True)
class Param:
    """Reference to a parameter bound at evaluation time."""

    name: str


@dataclasses.dataclass(frozen=True, slots=True)
class Term:
    """An operator applied to a tuple of operands."""

    operator: str
    operands: tuple[Operand, ...] = ()

    def __str__(self) -> str:
        """Render the term back into query syntax."""
        parts = [self.operator, *(_render(operand) for operand in self.operands)]
        return f"({' '.join(parts)})"


type Operand = Term | Symbol | Param | Value


def _render(operand: Operand) -> str:
    match operand:
        case Term():
            return str(operand)
        case Symbol(name=name):
            return name
        case Param(name=name):
            return f"${name}"
        case str():
            escaped = operand.replace("\\", "\\\\").replace("'", "\\'")
            return f"'{escaped}'"
        case dt.datetime():
            return operand.isoformat()
        case _:
            return str(operand)


class _TokenKind(enum.Enum):
    OPEN = "("
    CLOSE = ")"
    STRING = "string"
    ATOM = "atom"


@dataclasses.dataclass(frozen=True, slots=True)
class _Token:
    kind: _TokenKind
    text: str
    position: int


def _read_string(text: str, start: int) -> tuple[str, int]:
    """Read a quoted string starting at ``start``; return value and end index."""
    quote = text[start]
    chars: list[str] = []
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\" and index + 1 < len(text):
            chars.append(text[index + 1])
            index += 2
            continue
        if char == quote:
            return "".join(chars), index + 1
        chars.append(char)
        index += 1
    raise QuerySyntaxError.unterminated_string(start)


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char.isspace():
            index += 1
        elif char == "(":
            tokens.append(_Token(_TokenKind.OPEN, char, index))
            index += 1
        elif char == ")":
            tokens.append(_Token(_TokenKind.CLOSE, char, index))
            index += 1
        elif char in _QUOTES:
            value, end = _read_string(text, index)
            tokens.append(_Token(_TokenKind.STRING, value, index))
            index = end
        else:
            start = index
            while (
                index < len(text)
                and not text[index].isspace()
                and text[index] not in _DELIMITERS
            ):
                index += 1
            tokens.append(_Token(_TokenKind.ATOM, text[start:index], start))
    return tokens


def _atom_value(token: _Token) -> Operand:
    text = token.text
    if _TIMESTAMP.fullmatch(text):
        return dt.datetime.fromisoformat(text.replace("Z", "+00:00")).astimezone(
            dt.UTC
        )
    if _FLOAT.fullmatch(text):
        return float(text)
    if _INTEGER.fullmatch(text):
        return int(text)
    if param := _PARAM.fullmatch(text):
        return Param(param.group(1))
    if _SYMBOL.fullmatch(text):
        return Symbol(text)
    raise QuerySyntaxError.unexpected_token(text, token.position)


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = _tokenize(text)
        self._index = 0

    def _next(self) -> _Token:
        if self._index >= len(self._tokens):
            raise QuerySyntaxError.unexpected_end(len(self._text))
        token = self._tokens[self._index]
        self._index += 1
        return token

    def parse(self) -> Term:
        token = self._next()
        if token.kind is not _TokenKind.OPEN:
            raise QuerySyntaxError.unexpected_token(token.text, token.position)
        term = self._term()
        if self._index < len(self._tokens):
            extra = self._tokens[self._index]
            raise QuerySyntaxError.unexpected_token(extra.text, extra.position)
        return term

    def _term(self) -> Term:
        head = self._next()
        if head.kind is not _TokenKind.ATOM or not _SYMBOL.fullmatch(head.text):
            raise QuerySyntaxError.unexpected_token(head.text, head.position)
        operands: list[Operand] = []
        while True:
            token = self._next()
            match token.kind:
                case _TokenKind.CLOSE:
                    return Term(head.text, tuple(operands))
                case _TokenKind.OPEN:
                    operands.append(self._term())
                case _TokenKind.STRING:
                    operands.append(token.text)
                case _TokenKind.ATOM:
                    operands.append(_atom_value(token))


def parse_query(text: str) -> Term:
    """Parse ``text`` into a term tree.

    Raises
    ------
    QuerySyntaxError
        If the text is not exactly one well-formed term.

    """
    return _Parser(text).parse()
