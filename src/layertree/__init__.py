"""
layertree - Compose asynchronous resolvers into selectable result trees

layertree lets independent async "layers" embed each other's lazy results and
lets callers choose, per invocation, which nested results get computed.
"""

from importlib.metadata import version

from layertree.config import ResolutionConfig, configure, get_config
from layertree.core import (
    OMIT,
    IncludeSpec,
    InvocationContext,
    LazyTask,
    TaskState,
    fields_for,
    merge_include,
    validate_include,
)
from layertree.execution import (
    PoolScheduler,
    dedup_key,
    gather_all,
    resolve_selection,
    sequential,
)
from layertree.layer import Layer, LayerTask, define_layer

__version__ = version("layertree")

__all__ = [
    "__version__",
    "define_layer",
    "Layer",
    "LayerTask",
    "LazyTask",
    "TaskState",
    "InvocationContext",
    "IncludeSpec",
    "OMIT",
    "resolve_selection",
    "PoolScheduler",
    "dedup_key",
    "gather_all",
    "sequential",
    "fields_for",
    "merge_include",
    "validate_include",
    "ResolutionConfig",
    "configure",
    "get_config",
]
