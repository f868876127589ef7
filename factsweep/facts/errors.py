"""Errors raised by the fact store and its query language."""

from __future__ import annotations


class FactStoreError(RuntimeError):
    """Base class for fact store errors."""


class InvalidPropertyError(FactStoreError, ValueError):
    """Raised when a property name or value cannot be stored."""

    @classmethod
    def bad_name(cls, name: object) -> InvalidPropertyError:
        """Return an error for a property name with the wrong shape."""
        return cls(f"Invalid property name {name!r}, use [_a-z][a-zA-Z0-9_]*")

    @classmethod
    def unsupported_value(cls, name: str, value: object) -> InvalidPropertyError:
        """Return an error for a value type the store cannot persist."""
        return cls(
            f"Property {name!r} cannot hold a value of type {type(value).__name__}"
        )

    @classmethod
    def empty_string(cls, name: str) -> InvalidPropertyError:
        """Return an error for an empty string value."""
        return cls(f"Property {name!r} cannot be set to an empty string")

    @classmethod
    def naive_datetime(cls, name: str) -> InvalidPropertyError:
        """Return an error for a datetime without timezone information."""
        return cls(f"Property {name!r} must hold timezone aware datetimes")

    @classmethod
    def no_properties(cls) -> InvalidPropertyError:
        """Return an error for a lookup without any properties."""
        return cls("At least one property is required")


class FactNotFoundError(FactStoreError, LookupError):
    """Raised when an operation targets a fact id that does not exist."""

    def __init__(self, fact_id: int) -> None:
        """Record the missing fact id."""
        self.fact_id = fact_id
        super().__init__(f"Fact #{fact_id} not found")


class QueryError(FactStoreError):
    """Base class for query language errors."""


class QuerySyntaxError(QueryError, ValueError):
    """Raised when a query expression cannot be parsed."""

    def __init__(self, message: str, *, position: int) -> None:
        """Attach the character offset of the failure."""
        self.position = position
        super().__init__(f"{message} at position {position}")

    @classmethod
    def unexpected_end(cls, position: int) -> QuerySyntaxError:
        """Return an error for an expression that ends too early."""
        return cls("Unexpected end of query", position=position)

    @classmethod
    def unexpected_token(cls, token: str, position: int) -> QuerySyntaxError:
        """Return an error for a token that is not allowed here."""
        return cls(f"Unexpected token {token!r}", position=position)

    @classmethod
    def unterminated_string(cls, position: int) -> QuerySyntaxError:
        """Return an error for a string literal without a closing quote."""
        return cls("Unterminated string literal", position=position)


class UnknownOperatorError(QueryError, ValueError):
    """Raised when a term uses an operator the evaluator does not know."""

    def __init__(self, operator: str) -> None:
        """Record the unknown operator."""
        self.operator = operator
        super().__init__(f"Unknown query operator {operator!r}")


class QueryArityError(QueryError, ValueError):
    """Raised when a term has the wrong number of operands."""

    def __init__(self, operator: str, expected: str, actual: int) -> None:
        """Describe the operand count mismatch."""
        self.operator = operator
        super().__init__(
            f"Operator {operator!r} expects {expected} operand(s), got {actual}"
        )


class MissingQueryParameterError(QueryError, KeyError):
    """Raised when a query references a parameter that was not bound."""

    def __init__(self, name: str) -> None:
        """Record the missing parameter name."""
        self.name = name
        super().__init__(f"Query parameter ${name} is not bound")

    def __str__(self) -> str:
        """Return the message without KeyError's repr quoting."""
        return str(self.args[0])
