"""
layertree exception classes.

This package provides all exception types raised by the library itself for
consistent error handling and reporting.
"""

from layertree.exceptions.core import (
    ContextError,
    DedupKeyError,
    IncludeSpecError,
    LayerTreeError,
    ResolutionDepthError,
    SchedulerError,
)

__all__ = [
    "LayerTreeError",
    "ContextError",
    "IncludeSpecError",
    "ResolutionDepthError",
    "SchedulerError",
    "DedupKeyError",
]
