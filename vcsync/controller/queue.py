"""Per-kind reconcile work queue.

Semantics, in the style of a controller-runtime rate-limited queue:

* Deduplication: a key that is already waiting is not queued twice.
* Single-flight: a key is never reconciled by two workers at once. A key
  added while it is being reconciled is marked dirty and re-queued as soon
  as the running reconcile finishes, so no event is lost.
* Back-off: a REQUEUE result or an exception re-adds the key after an
  exponentially growing delay; after ``max_requeues`` consecutive failures
  the key is dropped until its next watch event or resync.
* Bounded: ``add`` raises QueueFullError once ``max_size`` keys are waiting.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from vcsync.models.objects import ObjectKey
from vcsync.observability.logging import get_logger
from vcsync.observability.metrics import queue_depth
from vcsync.sync.engine import ReconcileResult

ReconcileFn = Callable[[ObjectKey], Awaitable[ReconcileResult]]

_BASE_DELAY_SECONDS = 0.005
_MAX_DELAY_SECONDS = 60.0


class QueueFullError(Exception):
    """Raised when the queue already holds ``max_size`` waiting keys."""


class WorkQueue:
    """Deduplicating, single-flight work queue drained by a worker pool."""

    def __init__(
        self,
        reconcile_fn: ReconcileFn,
        name: str = "",
        workers: int = 10,
        max_requeues: int = 15,
        max_size: int = 10000,
        base_delay: float = _BASE_DELAY_SECONDS,
        max_delay: float = _MAX_DELAY_SECONDS,
    ) -> None:
        self._reconcile_fn = reconcile_fn
        self._name = name
        self._worker_count = workers
        self._max_requeues = max_requeues
        self._max_size = max_size
        self._base_delay = base_delay
        self._max_delay = max_delay

        self._queue: asyncio.Queue[ObjectKey] = asyncio.Queue()
        self._waiting: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._dirty: set[ObjectKey] = set()
        self._failures: dict[ObjectKey, int] = {}
        self._delayed: dict[ObjectKey, asyncio.TimerHandle] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._log = get_logger("controller.queue").bind(kind=name)

    def __len__(self) -> int:
        return len(self._waiting)

    @property
    def processing(self) -> int:
        return len(self._processing)

    @property
    def running(self) -> bool:
        return bool(self._workers)

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def add(self, key: ObjectKey) -> None:
        if key in self._waiting:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if len(self._waiting) >= self._max_size:
            raise QueueFullError(f"work queue {self._name!r} is full ({self._max_size} keys)")
        self._waiting.add(key)
        self._queue.put_nowait(key)
        queue_depth.labels(kind=self._name).set(len(self._waiting))

    def add_after(self, key: ObjectKey, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        existing = self._delayed.get(key)
        if existing is not None:
            if existing.when() <= loop.time() + delay:
                return
            existing.cancel()
        self._delayed[key] = loop.call_later(delay, self._fire_delayed, key)

    def _fire_delayed(self, key: ObjectKey) -> None:
        self._delayed.pop(key, None)
        try:
            self.add(key)
        except QueueFullError:
            self._log.warning("queue full, dropping delayed key", key=str(key))

    def forget(self, key: ObjectKey) -> None:
        self._failures.pop(key, None)

    def failures(self, key: ObjectKey) -> int:
        return self._failures.get(key, 0)

    def _requeue(self, key: ObjectKey) -> None:
        attempts = self._failures.get(key, 0) + 1
        if attempts > self._max_requeues:
            self._log.warning("dropping key after max requeues", key=str(key), attempts=attempts - 1)
            self.forget(key)
            return
        self._failures[key] = attempts
        delay = min(self._base_delay * (2 ** (attempts - 1)), self._max_delay)
        self.add_after(key, delay)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._waiting.discard(key)
            queue_depth.labels(kind=self._name).set(len(self._waiting))
            self._processing.add(key)
            try:
                result = await self._reconcile_fn(key)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._log.error("reconcile failed", key=str(key), error=str(exc), exc_info=True)
                self._requeue(key)
            else:
                if result.requeue_after is not None:
                    self.forget(key)
                    self.add_after(key, result.requeue_after)
                elif result.requeue:
                    self._requeue(key)
                else:
                    self.forget(key)
            finally:
                self._processing.discard(key)
                self._queue.task_done()
                if key in self._dirty:
                    self._dirty.discard(key)
                    try:
                        self.add(key)
                    except QueueFullError:
                        self._log.warning("queue full, dropping dirty key", key=str(key))

    async def start(self) -> None:
        if self._workers:
            return
        for index in range(self._worker_count):
            task = asyncio.create_task(self._worker(), name=f"queue-{self._name}-{index}")
            self._workers.append(task)
        self._log.info("work queue started", workers=self._worker_count)

    async def stop(self) -> None:
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    async def wait_idle(self, timeout: float = 5.0, poll: float = 0.01) -> bool:
        """Wait until nothing is waiting, running or scheduled. False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._waiting or self._processing or self._delayed or self._dirty:
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(poll)
        return True
