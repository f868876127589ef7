"""Fact store: multi-valued property bags persisted with SQLAlchemy."""

from __future__ import annotations

from .errors import (
    FactNotFoundError,
    FactStoreError,
    InvalidPropertyError,
    MissingQueryParameterError,
    QueryArityError,
    QueryError,
    QuerySyntaxError,
    UnknownOperatorError,
)
from .models import Fact, Value, is_property_name
from .query import ParametrizedQuery
from .storage import Base, FactRecord, FactValueRecord, init_fact_storage
from .store import FactQuery, FactStore, FactTransaction

__all__ = [
    "Base",
    "Fact",
    "FactNotFoundError",
    "FactQuery",
    "FactRecord",
    "FactStore",
    "FactStoreError",
    "FactTransaction",
    "FactValueRecord",
    "InvalidPropertyError",
    "MissingQueryParameterError",
    "ParametrizedQuery",
    "QueryArityError",
    "QueryError",
    "QuerySyntaxError",
    "UnknownOperatorError",
    "Value",
    "init_fact_storage",
    "is_property_name",
]
