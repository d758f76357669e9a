"""
Array resolution strategies.

When the selection resolver meets a sequence it resolves every element with
the same include specification. How those element resolutions are scheduled
is delegated to an array strategy, the only concurrency-control hook in the
algorithm.

Contract shared by every strategy:
    - Results are returned as a list in original element order, whatever the
      completion order was.
    - Every element resolution that was started runs to completion; nothing
      is cancelled.
    - When any element fails, the error of the first failing element in
      element order is raised once all started elements have settled.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, Protocol

ResolveItem = Callable[[Any], Awaitable[Any]]


class ArrayStrategy(Protocol):
    """Callable scheduling element resolutions for one sequence."""

    async def __call__(
        self, items: Sequence[Any], resolve_item: ResolveItem
    ) -> list[Any]: ...


def unwrap_outcomes(outcomes: Iterable[Any]) -> list[Any]:
    """
    Turn `gather(..., return_exceptions=True)` outcomes into results.

    Params:
        outcomes: Values and exceptions in element order

    Returns:
        The values, when no outcome is an exception

    Raises:
        BaseException: The first exception in element order
    """
    results = list(outcomes)
    for outcome in results:
        if isinstance(outcome, BaseException):
            raise outcome
    return results


async def gather_all(items: Sequence[Any], resolve_item: ResolveItem) -> list[Any]:
    """Resolve every element concurrently with no ceiling."""
    outcomes = await asyncio.gather(
        *(resolve_item(item) for item in items), return_exceptions=True
    )
    return unwrap_outcomes(outcomes)


async def sequential(items: Sequence[Any], resolve_item: ResolveItem) -> list[Any]:
    """Resolve elements one after another, stopping at the first failure."""
    return [await resolve_item(item) for item in items]
