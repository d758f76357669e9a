"""
Deferred asynchronous computations.

A `LazyTask` wraps a zero-argument producer and only runs it when observed,
either by awaiting the task or by calling `start()`. Every observation runs
the producer again; nothing is memoized. Work that must execute once per key
belongs in a `PoolScheduler`.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Generator
from enum import Enum
from typing import Any, Generic, TypeVar

from layertree.core.types import IncludeSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")

Producer = Callable[[], Any]


class TaskState(Enum):
    """Lifecycle of the most recent observation of a lazy task."""

    PENDING = "pending"  # never observed
    RUNNING = "running"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"

    @property
    def settled(self) -> bool:
        """Whether the latest observation has finished."""
        return self in (TaskState.FULFILLED, TaskState.REJECTED)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class LazyTask(Generic[T]):
    """A deferred computation that executes its producer only when observed.

    Construction never starts the producer. Each `await` (or `start()`) call
    runs it from scratch, so two observations mean two executions.

    Params:
        producer: Zero-argument callable returning a value or an awaitable
        label: Optional name used in `repr` and debug logging
    """

    def __init__(self, producer: Producer, label: str | None = None):
        if not callable(producer):
            raise TypeError(
                f"LazyTask producer must be callable, got {type(producer).__name__}"
            )
        self._producer = producer
        self._label = label or getattr(producer, "__qualname__", "lazy")
        self._state = TaskState.PENDING
        self._observations = 0

    def __repr__(self) -> str:
        return f"<LazyTask {self._label} state={self._state.value}>"

    @property
    def label(self) -> str:
        return self._label

    @property
    def state(self) -> TaskState:
        """State of the latest observation."""
        return self._state

    @property
    def observations(self) -> int:
        """How many times the producer has been started."""
        return self._observations

    async def _observe(self) -> T:
        self._observations += 1
        self._state = TaskState.RUNNING
        logger.debug("Observing %s (run %d)", self._label, self._observations)
        try:
            value = await _maybe_await(self._producer())
        except BaseException:
            self._state = TaskState.REJECTED
            raise
        self._state = TaskState.FULFILLED
        return value

    def start(self) -> "asyncio.Task[T]":
        """Run the producer now and return a standard asyncio task for the result.

        Must be called from within a running event loop. Every call starts a
        new, independent execution.

        Returns:
            An `asyncio.Task` settling with the producer's value or error
        """
        return asyncio.ensure_future(self._observe())

    def __await__(self) -> Generator[Any, None, T]:
        return self._observe().__await__()

    def with_include(self, include: IncludeSpec) -> "LazyTask[T]":
        """
        Return a task that applies `include` to its own output when observed.

        Plain lazy tasks perform no selection and return themselves; tasks
        produced by `Layer.with_input` return a copy bound to the merged
        include specification.
        """
        return self

    def then(
        self,
        on_fulfilled: Callable[[T], Any] | None = None,
        on_rejected: Callable[[BaseException], Any] | None = None,
    ) -> "LazyTask[Any]":
        """Derive a lazy task that transforms this task's outcome.

        Neither this task nor the derived one runs until the derived task is
        observed. Callbacks may return plain values or awaitables.

        Params:
            on_fulfilled: Applied to the value on success; identity if omitted
            on_rejected: Applied to the exception on failure; re-raises if omitted

        Returns:
            A new `LazyTask` settling with the callback's result
        """
        return self._chain(on_fulfilled, on_rejected, "then")

    def _chain(
        self,
        on_fulfilled: Callable[[T], Any] | None,
        on_rejected: Callable[[BaseException], Any] | None,
        suffix: str,
    ) -> "LazyTask[Any]":
        async def chained() -> Any:
            try:
                value = await self._observe()
            except Exception as e:
                if on_rejected is None:
                    raise
                return await _maybe_await(on_rejected(e))
            if on_fulfilled is None:
                return value
            return await _maybe_await(on_fulfilled(value))

        return LazyTask(chained, label=f"{self._label}.{suffix}")

    def catch(self, on_rejected: Callable[[BaseException], Any]) -> "LazyTask[Any]":
        """Derive a lazy task that recovers from this task's failure."""
        return self.then(None, on_rejected)

    def finally_(self, callback: Callable[[], Any]) -> "LazyTask[T]":
        """Derive a lazy task that runs `callback` after either outcome.

        The callback's return value is ignored; the settled value or error
        passes through unchanged. An exception raised by the callback itself
        replaces the original outcome.
        """

        async def on_fulfilled(value: T) -> T:
            await _maybe_await(callback())
            return value

        async def on_rejected(error: BaseException) -> T:
            await _maybe_await(callback())
            raise error

        return self._chain(on_fulfilled, on_rejected, "finally")


def is_deferred(value: Any) -> bool:
    """Check whether a value still has to be awaited to produce its content."""
    return isinstance(value, LazyTask) or inspect.isawaitable(value)
