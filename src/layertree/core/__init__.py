"""
Core layertree components.

This package provides the building blocks shared by layers and the execution
machinery: lazy tasks, invocation contexts, include specification helpers
and type definitions.
"""

from layertree.core.context import ContextBuilder, InvocationContext
from layertree.core.include import fields_for, merge_include, validate_include
from layertree.core.tasks import LazyTask, TaskState, is_deferred
from layertree.core.types import OMIT, IncludeSpec

__all__ = [
    "LazyTask",
    "TaskState",
    "is_deferred",
    "ContextBuilder",
    "InvocationContext",
    "IncludeSpec",
    "OMIT",
    "fields_for",
    "merge_include",
    "validate_include",
]
