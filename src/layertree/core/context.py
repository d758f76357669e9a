"""
Invocation context passed to layer resolvers.

A context is assembled by `ContextBuilder` during `Layer.with_input`: the
include specification is recorded first so that an input factory can read
it, then the input is set, then `build()` freezes both into an
`InvocationContext`.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from attrs import frozen

from layertree.core.include import validate_include
from layertree.core.types import IncludeSpec
from layertree.exceptions import ContextError

TInput = TypeVar("TInput")

_UNSET: Any = object()


@frozen
class InvocationContext(Generic[TInput]):
    """One call's parameters, read-only once built."""

    input: TInput
    include: IncludeSpec


@dataclass
class ContextBuilder(Generic[TInput]):
    """In-progress context for a single `with_input` call."""

    include: IncludeSpec = None
    input: Any = _UNSET

    def add_include(self, include: IncludeSpec) -> None:
        """
        Record the include specification for this call.

        Params:
            include: Include specification; None is stored as an empty mapping

        Raises:
            IncludeSpecError: If the specification is malformed
        """
        self.include = validate_include({} if include is None else include)

    def add_input(self, input: TInput) -> None:
        self.input = input

    @property
    def has_input(self) -> bool:
        return self.input is not _UNSET

    def build(self) -> InvocationContext[TInput]:
        """
        Freeze the builder into an `InvocationContext`.

        Raises:
            ContextError: If no input was ever supplied
        """
        if not self.has_input:
            raise ContextError("input is not set")
        return InvocationContext(
            input=self.input,
            include={} if self.include is None else self.include,
        )
