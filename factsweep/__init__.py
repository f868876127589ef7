"""Resumable, budget-aware repository iteration over a fact store."""

from __future__ import annotations

from factsweep.iterate import IterationSummary, RepositoryIterator, iterate
from factsweep.options import JudgeOptions

__all__ = ["IterationSummary", "JudgeOptions", "RepositoryIterator", "iterate"]
