"""Errors raised by the repository iteration engine."""

from __future__ import annotations

import typing as typ


class IterateConfigError(ValueError):
    """Raised when an iterator is configured or invoked incorrectly."""

    @classmethod
    def already_set(cls, setting: str) -> IterateConfigError:
        """Return an error for a one-shot setting assigned twice."""
        return cls(f"The {setting!r} setting is already set")

    @classmethod
    def none_value(cls, setting: str) -> IterateConfigError:
        """Return an error for a setting assigned ``None``."""
        return cls(f"Cannot set {setting!r} to None")

    @classmethod
    def missing(cls, method: str) -> IterateConfigError:
        """Return an error for ``over`` called before a required setter."""
        return cls(f"Use {method!r} first")

    @classmethod
    def bad_label(cls, label: object) -> IterateConfigError:
        """Return an error for a label with the wrong shape."""
        return cls(f"Wrong label format {label!r}, use [_a-z][a-zA-Z0-9_]*")

    @classmethod
    def reserved_label(cls, label: str) -> IterateConfigError:
        """Return an error for a label that clashes with marker properties."""
        return cls(f"Label {label!r} is reserved for marker facts")

    @classmethod
    def bad_property(cls, name: object) -> IterateConfigError:
        """Return an error for a sort property that is not an identifier."""
        return cls(f"Sort property must be an identifier string, got {name!r}")

    @classmethod
    def not_integer(cls, setting: str, value: object) -> IterateConfigError:
        """Return an error for a non-integer numeric setting."""
        return cls(f"The {setting!r} setting must be an int, got {value!r}")

    @classmethod
    def not_positive(cls, setting: str, value: int) -> IterateConfigError:
        """Return an error for a numeric setting that must be positive."""
        return cls(f"The {setting!r} setting must be a positive integer, got {value}")

    @classmethod
    def bad_query(cls, error: Exception) -> IterateConfigError:
        """Return an error for a query template that does not compile."""
        return cls(f"Invalid query: {error}")

    @classmethod
    def unknown_parameters(cls, names: typ.Iterable[str]) -> IterateConfigError:
        """Return an error for a query referencing unsupported parameters."""
        listed = ", ".join(f"${name}" for name in sorted(names))
        return cls(f"Query may only use $before and $repository, found {listed}")

    @classmethod
    def already_used(cls) -> IterateConfigError:
        """Return an error for a second call to ``over``."""
        return cls("This iterator has already run, build a new one")


class InvalidMaskError(ValueError):
    """Raised when a repository mask cannot be expanded."""

    @classmethod
    def owner_wildcard(cls, mask: str) -> InvalidMaskError:
        """Return an error for a wildcard in the owner part of a mask."""
        return cls(f"Owner of mask {mask!r} can't have an asterisk")


class NoRepositoriesError(RuntimeError):
    """Raised when the configured masks match no repository."""

    @classmethod
    def not_configured(cls) -> NoRepositoriesError:
        """Return an error for options without a repositories setting."""
        return cls("No repositories configured, set FACTSWEEP_REPOSITORIES")

    @classmethod
    def no_matches(cls, masks: str) -> NoRepositoriesError:
        """Return an error for masks that resolve to nothing."""
        return cls(f"No repos found matching: {masks}")


class CallbackContractError(TypeError):
    """Raised when the iteration callback returns something other than an int."""

    @classmethod
    def wrong_return(cls, value: object) -> CallbackContractError:
        """Return an error naming the type the callback returned."""
        return cls(
            f"Iterator must return an int, but {type(value).__name__} was returned"
        )


class SortKeyError(TypeError):
    """Raised when sort property values cannot be ordered together."""

    @classmethod
    def unorderable(cls, prop: str, kinds: typ.Iterable[str]) -> SortKeyError:
        """Return an error naming the mixed value types found."""
        listed = ", ".join(sorted(set(kinds)))
        return cls(f"Values of {prop!r} cannot be sorted together: {listed}")
