"""
Selection resolution for layer outputs.

This module walks a resolver's raw output together with an include
specification, awaiting the deferred values the caller asked for and
dropping everything else that is deferred. Plain values are kept unless the
caller turned them off explicitly with False.

Rules, applied in order at every node:
    1. include is False -> omitted
    2. deferred value (LazyTask or awaitable): awaited when include is True
       or a mapping, omitted when include is None
    3. list/tuple -> every element resolved with the same include, order kept
    4. mapping -> keys resolved one by one in source order; omitted keys are
       absent from the result, never set to None
    5. anything else -> returned unchanged

When a mapping include meets a layer task, the task is rebound to the merged
include before it runs, so selections reach into nested layers.
"""

import inspect
import logging
from collections.abc import Mapping
from typing import Any

from layertree.config import get_config
from layertree.core.tasks import LazyTask, is_deferred
from layertree.core.types import OMIT, IncludeSpec
from layertree.exceptions import ResolutionDepthError
from layertree.execution.strategies import ArrayStrategy, gather_all

logger = logging.getLogger(__name__)


async def resolve_selection(
    value: Any,
    include: IncludeSpec,
    *,
    array_strategy: ArrayStrategy | None = None,
    max_depth: int | None = None,
) -> Any:
    """
    Apply an include specification to a raw result tree.

    Params:
        value: Raw output of a resolver, possibly containing deferred values
        include: Include specification for `value`
        array_strategy: How sequence elements are scheduled; unconstrained
            concurrent resolution when omitted
        max_depth: Recursion limit; the configured `max_depth` when omitted

    Returns:
        The pruned value, or `OMIT` when the value itself is excluded

    Raises:
        ResolutionDepthError: When the recursion limit is exceeded
    """
    limit = max_depth if max_depth is not None else get_config().max_depth
    strategy = array_strategy if array_strategy is not None else gather_all
    return await _resolve(value, include, strategy, limit, 0, "")


def _discard(value: Any) -> None:
    # A bare coroutine that is never awaited would emit a RuntimeWarning.
    if inspect.iscoroutine(value):
        value.close()


async def _resolve(
    value: Any,
    include: IncludeSpec,
    strategy: ArrayStrategy,
    limit: int,
    depth: int,
    path: str,
) -> Any:
    if depth > limit:
        _discard(value)
        raise ResolutionDepthError(limit, "selection", path)

    if include is False:
        _discard(value)
        return OMIT

    if is_deferred(value):
        if include is None:
            _discard(value)
            return OMIT
        if isinstance(value, LazyTask) and isinstance(include, Mapping):
            # Nested layers prune their own output; hand them the selection first.
            value = value.with_include(include)
        return await _resolve(await value, include, strategy, limit, depth + 1, path)

    if isinstance(value, list | tuple):
        return await _resolve_sequence(value, include, strategy, limit, depth, path)

    if isinstance(value, Mapping):
        return await _resolve_mapping(value, include, strategy, limit, depth, path)

    return value


async def _resolve_sequence(
    value: list | tuple,
    include: IncludeSpec,
    strategy: ArrayStrategy,
    limit: int,
    depth: int,
    path: str,
) -> list | tuple:
    async def resolve_item(entry: tuple[int, Any]) -> Any:
        index, item = entry
        return await _resolve(
            item, include, strategy, limit, depth + 1, f"{path}[{index}]"
        )

    results = await strategy(list(enumerate(value)), resolve_item)
    selected = [result for result in results if result is not OMIT]
    return tuple(selected) if isinstance(value, tuple) else selected


async def _resolve_mapping(
    value: Mapping,
    include: IncludeSpec,
    strategy: ArrayStrategy,
    limit: int,
    depth: int,
    path: str,
) -> dict:
    selected = {}
    for key, child in value.items():
        child_include = include.get(key) if isinstance(include, Mapping) else None
        child_path = f"{path}.{key}" if path else str(key)

        if child_include is None and is_deferred(child):
            logger.debug("Skipping deferred field '%s' (not included)", child_path)
            _discard(child)
            continue

        resolved = await _resolve(
            child, child_include, strategy, limit, depth + 1, child_path
        )
        if resolved is OMIT:
            logger.debug("Omitting field '%s'", child_path)
            continue
        selected[key] = resolved

    return selected
