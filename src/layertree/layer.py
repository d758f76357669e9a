"""
Layer definition and invocation.

A layer pairs an input contract with a resolver. Calling `with_input` never
runs anything; it returns a `LazyTask` which, when observed, validates the
input, runs the resolver and applies the caller's include specification to
the resolver's output.

Layers compose by returning other layers' lazy tasks from a resolver:

    author = define_layer(fetch_author, input=AuthorQuery)

    @define_layer(input=PostQuery, meta={"name": "post"})
    async def post(ctx):
        row = await load_post(ctx.input.id)
        return {**row, "author": author.with_input({"id": row["author_id"]})}

    await post.with_input({"id": "1"})                       # no "author" key
    await post.with_input({"id": "1"}, {"author": True})     # author resolved
"""

import inspect
import logging
from collections.abc import Callable, Mapping
from contextvars import ContextVar
from functools import lru_cache
from typing import Any, Generic, TypeVar

from attrs import evolve, field, frozen
from pydantic import TypeAdapter

from layertree.config import get_config
from layertree.core.context import ContextBuilder, InvocationContext
from layertree.core.include import merge_include, validate_include
from layertree.core.tasks import LazyTask
from layertree.core.types import OMIT, IncludeSpec
from layertree.exceptions import ResolutionDepthError
from layertree.execution.selection import resolve_selection
from layertree.execution.strategies import ArrayStrategy

logger = logging.getLogger(__name__)

TInput = TypeVar("TInput")
TOutput = TypeVar("TOutput")

Resolver = Callable[[InvocationContext[Any]], Any]
InputFactory = Callable[[ContextBuilder[Any]], Any]

# Number of layer producers currently running in this execution context.
_layer_depth: ContextVar[int] = ContextVar("layertree_layer_depth", default=0)


@lru_cache(maxsize=256)
def _cached_adapter(input_model: Any) -> TypeAdapter:
    return TypeAdapter(input_model)


def _adapter_for(input_model: Any) -> TypeAdapter:
    try:
        return _cached_adapter(input_model)
    except TypeError:
        # Unhashable annotations (e.g. Annotated with dict metadata) skip the cache
        return TypeAdapter(input_model)


class LayerTask(LazyTask[TOutput]):
    """Lazy invocation of a layer bound to one invocation context."""

    def __init__(self, layer: "Layer[Any, TOutput]", context: InvocationContext[Any]):
        self._layer = layer
        self._context = context
        super().__init__(lambda: layer._produce(context), label=layer.name)

    @property
    def layer(self) -> "Layer[Any, TOutput]":
        return self._layer

    @property
    def context(self) -> InvocationContext[Any]:
        return self._context

    def with_include(self, include: IncludeSpec) -> "LayerTask[TOutput]":
        """Rebind to the bound include merged with `include`; non-mappings change nothing."""
        if not isinstance(include, Mapping):
            return self
        merged = merge_include(self._context.include, validate_include(include))
        return LayerTask(self._layer, evolve(self._context, include=merged))


@frozen(eq=False)
class Layer(Generic[TInput, TOutput]):
    """A reusable resolver unit.

    Params:
        resolver: Called with an `InvocationContext`; may be sync or async and
            may embed lazy tasks anywhere in its output
        input_model: Pydantic model or any type accepted by `TypeAdapter`;
            raw input is passed through unvalidated when None
        array_strategy: Scheduling of sequence elements during selection
        meta: Free-form metadata; "name" is used for logging
        include: Default include specification merged under every call's
    """

    resolver: Resolver
    input_model: Any = None
    array_strategy: ArrayStrategy | None = None
    meta: Mapping[str, Any] = field(factory=dict)
    include: IncludeSpec = None

    @property
    def name(self) -> str:
        return self.meta.get("name") or getattr(self.resolver, "__name__", "layer")

    def validate_input(self, raw_input: Any) -> TInput:
        """
        Parse raw input with the layer's input model.

        Raises:
            pydantic.ValidationError: If the input does not match the model
        """
        if self.input_model is None:
            return raw_input
        return _adapter_for(self.input_model).validate_python(raw_input)

    def with_include(self, include: IncludeSpec) -> "Layer[TInput, TOutput]":
        """Return a copy whose default include is merged with `include`."""
        validate_include(include)
        return evolve(self, include=merge_include(self.include, include))

    def with_input(
        self,
        input: TInput | InputFactory,
        include: IncludeSpec = None,
    ) -> LayerTask[TOutput]:
        """
        Bind input and include specification into a lazy invocation.

        Params:
            input: Raw input, or a callable receiving the in-progress
                `ContextBuilder` (with `include` already set) and returning it
            include: Selection for this call, merged over the layer default

        Returns:
            A `LazyTask` resolving to the selected output; None when the
            whole output was excluded

        Raises:
            IncludeSpecError: If the include specification is malformed
        """
        builder: ContextBuilder[Any] = ContextBuilder()
        builder.add_include(merge_include(self.include, include))

        if callable(input) and not isinstance(input, type):
            input = input(builder)
        builder.add_input(input)

        return LayerTask(self, builder.build())

    async def _produce(self, context: InvocationContext[Any]) -> Any:
        depth = _layer_depth.get()
        limit = get_config().max_layer_depth
        if depth >= limit:
            raise ResolutionDepthError(limit, "layer", self.name)

        token = _layer_depth.set(depth + 1)
        try:
            context = evolve(context, input=self.validate_input(context.input))
            logger.debug("Resolving layer '%s' at depth %d", self.name, depth)

            raw = self.resolver(context)
            if inspect.isawaitable(raw):
                raw = await raw

            selected = await resolve_selection(
                raw, context.include, array_strategy=self.array_strategy
            )
        finally:
            _layer_depth.reset(token)

        return None if selected is OMIT else selected


def define_layer(
    resolver: Resolver | None = None,
    *,
    input: Any = None,
    array_strategy: ArrayStrategy | None = None,
    meta: Mapping[str, Any] | None = None,
    include: IncludeSpec = None,
) -> Layer | Callable[[Resolver], Layer]:
    """
    Define a layer, directly or as a decorator.

    Params:
        resolver: Resolver function; when omitted a decorator is returned
        input: Input model validated on every invocation
        array_strategy: Scheduling of sequence elements, e.g. a `PoolScheduler`
        meta: Free-form metadata
        include: Default include specification

    Returns:
        The `Layer`, or a decorator producing one

    Raises:
        IncludeSpecError: If the default include specification is malformed
    """
    validate_include(include)

    def build(fn: Resolver) -> Layer:
        return Layer(
            resolver=fn,
            input_model=input,
            array_strategy=array_strategy,
            meta=dict(meta or {}),
            include=include,
        )

    if resolver is None:
        return build
    return build(resolver)
