"""
layertree execution components.

This package provides selection resolution, array resolution strategies and
the bounded deduplicating pool scheduler.
"""

from layertree.execution.scheduler import PoolScheduler, dedup_key
from layertree.execution.selection import resolve_selection
from layertree.execution.strategies import (
    ArrayStrategy,
    gather_all,
    sequential,
    unwrap_outcomes,
)

__all__ = [
    "PoolScheduler",
    "dedup_key",
    "resolve_selection",
    "ArrayStrategy",
    "gather_all",
    "sequential",
    "unwrap_outcomes",
]
