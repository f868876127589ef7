"""Repository iteration engine."""

from __future__ import annotations

from .budget import BudgetGuard, BudgetSignal
from .candidates import Candidate, Exhausted, Found
from .errors import (
    CallbackContractError,
    InvalidMaskError,
    IterateConfigError,
    NoRepositoriesError,
    SortKeyError,
)
from .iterator import (
    IterationContext,
    IterationSummary,
    RepositoryIterator,
    iterate,
)
from .observability import (
    ErrorCategory,
    IterationEventLogger,
    IterationEventType,
    categorize_error,
)
from .progress import MARKER_KIND, MARKER_SOURCE, Marker, ProgressStore
from .repositories import RepositorySet, mask_to_regex
from .sorted_buffer import SortedDeliveryBuffer

__all__ = [
    "MARKER_KIND",
    "MARKER_SOURCE",
    "BudgetGuard",
    "BudgetSignal",
    "CallbackContractError",
    "Candidate",
    "ErrorCategory",
    "Exhausted",
    "Found",
    "InvalidMaskError",
    "IterateConfigError",
    "IterationContext",
    "IterationEventLogger",
    "IterationEventType",
    "IterationSummary",
    "Marker",
    "NoRepositoriesError",
    "ProgressStore",
    "RepositoryIterator",
    "RepositorySet",
    "SortKeyError",
    "SortedDeliveryBuffer",
    "categorize_error",
    "iterate",
    "mask_to_regex",
]
