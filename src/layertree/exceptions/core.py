"""
Exception classes for layer composition and selection resolution.

This module defines specific exception types for the error conditions that
the library itself can raise. Errors produced by resolvers and by input
validation are never wrapped: they propagate unchanged through the lazy
task that observed them.
"""

from typing import Any


class LayerTreeError(Exception):
    """Base exception for all layertree-related errors."""

    pass


class ContextError(LayerTreeError):
    """Raised when an invocation context cannot be built."""

    def __init__(self, reason: str):
        """
        Initialize the exception.

        Params:
            reason: Why the context could not be built
        """
        self.reason = reason
        super().__init__(f"Cannot build invocation context: {reason}")


class IncludeSpecError(LayerTreeError):
    """Raised when an include specification has an invalid shape."""

    def __init__(self, path: str, reason: str):
        """
        Initialize the exception.

        Params:
            path: Dotted location of the offending entry ("" for the root)
            reason: Why the entry is invalid
        """
        self.path = path
        self.reason = reason
        location = f"'{path}'" if path else "root"
        super().__init__(f"Invalid include specification at {location}: {reason}")


class ResolutionDepthError(LayerTreeError):
    """Raised when resolution nests deeper than the configured limit.

    This almost always means the composition graph contains a cycle, either
    through layers that embed each other or through a self-referencing
    include specification.
    """

    def __init__(self, limit: int, kind: str, path: str = ""):
        """
        Initialize the exception.

        Params:
            limit: The limit that was exceeded
            kind: Which guard tripped ("selection" or "layer")
            path: Dotted location inside the result tree, when known
        """
        self.limit = limit
        self.kind = kind
        self.path = path
        message = f"Maximum {kind} depth of {limit} exceeded"
        if path:
            message += f" at '{path}'"
        super().__init__(f"{message}; is the composition graph cyclic?")


class SchedulerError(LayerTreeError):
    """Raised when a pool scheduler is misconfigured."""

    pass


class DedupKeyError(SchedulerError):
    """Raised when a scheduler identifier cannot be turned into a dedup key."""

    def __init__(self, identifier: Any, reason: str):
        """
        Initialize the exception.

        Params:
            identifier: The identifier that failed to serialize
            reason: The underlying serialization failure
        """
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Cannot derive dedup key from {identifier!r}: {reason}")
