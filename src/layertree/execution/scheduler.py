"""Bounded-concurrency, deduplicating task executor.

A `PoolScheduler` runs asynchronous tasks under a concurrency ceiling and
collapses requests that share an identifier into a single execution:

    scheduler = PoolScheduler(4)
    user = await scheduler.resolve(("user", user_id), lambda: fetch_user(user_id))

Settled results stay in the dedup map for the scheduler's whole lifetime,
rejections included, so later requests with the same identifier are answered
immediately and nothing is ever retried. In long-lived processes either scope
a scheduler to one top-level resolution or evict entries with `forget` and
`clear`.

The scheduler is also an array strategy: assigning it to a layer's
`array_strategy` bounds how many elements of a sequence are resolved at once.
Sequences nested inside an element already holding a slot of the same
scheduler are not queued again; they resolve unbounded within that slot.

Each task runs in a copy of the context it was scheduled from, so context
variables of the caller, such as the layer nesting depth, carry over.

All state is mutated from the event loop thread only; no locking is used.
"""

import asyncio
import contextvars
import json
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from attrs import frozen

from layertree.config import get_config
from layertree.core.tasks import LazyTask
from layertree.exceptions import DedupKeyError, SchedulerError
from layertree.execution.strategies import ResolveItem, gather_all, unwrap_outcomes

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[Any]] | LazyTask

# Schedulers whose slot the current execution context is running in.
_active_pools: contextvars.ContextVar[frozenset["PoolScheduler"]] = (
    contextvars.ContextVar("layertree_active_pools", default=frozenset())
)


def dedup_key(identifier: Any) -> str:
    """
    Derive the canonical dedup key of an identifier.

    The key is the plain JSON serialization of the identifier. Mapping keys
    are not sorted, so equal mappings written in a different key order
    produce different keys.

    Params:
        identifier: JSON-serializable identifier

    Returns:
        The serialized key

    Raises:
        DedupKeyError: If the identifier cannot be serialized
    """
    try:
        return json.dumps(identifier)
    except (TypeError, ValueError) as e:
        raise DedupKeyError(identifier, str(e)) from e


@frozen
class _QueueEntry:
    task: Task
    handle: asyncio.Future
    key: str | None
    context: contextvars.Context


class PoolScheduler:
    """Semaphore-like executor with FIFO dispatch and per-identifier dedup.

    Params:
        concurrency: Maximum number of tasks running at once; defaults to
            the configured `default_concurrency`

    Raises:
        SchedulerError: If the ceiling is lower than 1
    """

    def __init__(self, concurrency: int | None = None):
        if concurrency is None:
            concurrency = get_config().default_concurrency
        if isinstance(concurrency, bool) or not isinstance(concurrency, int):
            raise SchedulerError(
                f"Concurrency must be an integer, got {type(concurrency).__name__}"
            )
        if concurrency < 1:
            raise SchedulerError(f"Concurrency must be at least 1, got {concurrency}")
        self._concurrency = concurrency
        self._running = 0
        self._queue: deque[_QueueEntry] = deque()
        self._handles: dict[str, asyncio.Future] = {}
        self._workers: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return (
            f"<PoolScheduler concurrency={self._concurrency} running={self._running} "
            f"pending={len(self._queue)} entries={len(self._handles)}>"
        )

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def running(self) -> int:
        """Number of tasks currently executing."""
        return self._running

    @property
    def pending(self) -> int:
        """Number of tasks waiting in the queue."""
        return len(self._queue)

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, identifier: Any) -> bool:
        return dedup_key(identifier) in self._handles

    def resolve(self, identifier: Any, task: Task) -> asyncio.Future:
        """
        Schedule `task` unless work for the same identifier already exists.

        Returns immediately; the task runs once a slot is free. When the
        identifier was seen before, the existing future is returned and
        `task` is never invoked.

        Params:
            identifier: JSON-serializable identifier of the work
            task: Zero-argument callable returning an awaitable, or a LazyTask

        Returns:
            Future settling with the task's value or error

        Raises:
            DedupKeyError: If the identifier cannot be serialized
        """
        key = dedup_key(identifier)
        existing = self._handles.get(key)
        if existing is not None:
            logger.debug("Dedup hit for %s", key)
            return existing

        handle = asyncio.get_running_loop().create_future()
        self._handles[key] = handle
        self._enqueue(
            _QueueEntry(
                task=task, handle=handle, key=key, context=contextvars.copy_context()
            )
        )
        return handle

    def submit(self, task: Task) -> asyncio.Future:
        """
        Schedule `task` under the concurrency ceiling without deduplication.

        Params:
            task: Zero-argument callable returning an awaitable, or a LazyTask

        Returns:
            Future settling with the task's value or error
        """
        handle = asyncio.get_running_loop().create_future()
        self._enqueue(
            _QueueEntry(
                task=task, handle=handle, key=None, context=contextvars.copy_context()
            )
        )
        return handle

    def forget(self, identifier: Any) -> bool:
        """
        Drop the settled entry for `identifier` so the next request runs again.

        Returns:
            True if an entry was removed; False if none existed or it is still pending
        """
        key = dedup_key(identifier)
        handle = self._handles.get(key)
        if handle is None or not handle.done():
            return False
        del self._handles[key]
        return True

    def clear(self) -> int:
        """
        Drop every settled entry from the dedup map.

        Pending entries are kept so in-flight work is never duplicated.

        Returns:
            Number of entries removed
        """
        settled = [key for key, handle in self._handles.items() if handle.done()]
        for key in settled:
            del self._handles[key]
        return len(settled)

    async def __call__(
        self, items: Sequence[Any], resolve_item: ResolveItem
    ) -> list[Any]:
        """Array strategy: resolve elements through the pool, keeping their order.

        Sequences met while already running inside one of this pool's slots
        are resolved with `gather_all` instead; queued behind the slots their
        parents hold they would never start.
        """
        if self in _active_pools.get():
            return await gather_all(items, resolve_item)
        handles = [self.submit(_bind(resolve_item, item)) for item in items]
        outcomes = await asyncio.gather(*handles, return_exceptions=True)
        return unwrap_outcomes(outcomes)

    def _enqueue(self, entry: _QueueEntry) -> None:
        self._queue.append(entry)
        logger.debug(
            "Queued %s (%d pending, %d/%d running)",
            entry.key or "anonymous task",
            len(self._queue),
            self._running,
            self._concurrency,
        )
        self._tick()

    def _tick(self) -> None:
        while self._running < self._concurrency and self._queue:
            entry = self._queue.popleft()
            self._running += 1
            worker = asyncio.get_running_loop().create_task(
                self._run(entry), context=entry.context
            )
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)

    async def _run(self, entry: _QueueEntry) -> None:
        handle = entry.handle
        token = _active_pools.set(_active_pools.get() | {self})
        try:
            if isinstance(entry.task, LazyTask):
                value = await entry.task
            else:
                value = await entry.task()
        except asyncio.CancelledError:
            if not handle.done():
                handle.cancel()
            raise
        except Exception as e:
            logger.debug("Task %s rejected: %r", entry.key or "anonymous task", e)
            if not handle.done():
                handle.set_exception(e)
        else:
            if not handle.done():
                handle.set_result(value)
        finally:
            _active_pools.reset(token)
            self._running -= 1
            self._tick()


def _bind(resolve_item: ResolveItem, item: Any) -> Callable[[], Awaitable[Any]]:
    def task() -> Awaitable[Any]:
        return resolve_item(item)

    return task
