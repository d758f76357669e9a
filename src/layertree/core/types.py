"""
Core type definitions for layertree.

This module contains the fundamental type aliases and the omission sentinel
shared by the selection resolver, the layer and the include helpers.
"""

from collections.abc import Mapping
from typing import TypeAlias, Union

# A bare boolean or None at any node, or a mapping of field name to a nested spec.
IncludeSpec: TypeAlias = Union[bool, None, Mapping[str, "IncludeSpec"]]


class _Omit:
    """Marker returned by the selection resolver for values to drop."""

    _instance = None

    def __new__(cls) -> "_Omit":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "OMIT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "OMIT"


OMIT = _Omit()
