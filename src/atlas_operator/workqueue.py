"""Asyncio work queue with per-key serialization, coalescing and backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from . import metrics
from .indexer import ObjectKey
from .reconciler import ReconcileOutcome

logger = logging.getLogger(__name__)


class WorkQueue:
    """Bounded pool of workers pulling reconcile requests.

    A key is queued at most once. A key added while its pass is running is
    marked dirty and queued again when the pass ends, so two passes over one
    key never overlap. Passes run in worker threads.

    Args:
        reconcile_fn: Blocking reconcile of one key
        max_workers: Number of concurrent passes
        base_delay: First backoff delay in seconds
        max_delay: Backoff ceiling in seconds
    """

    def __init__(
        self,
        reconcile_fn: Callable[[ObjectKey], ReconcileOutcome],
        max_workers: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 300.0,
    ):
        self.reconcile_fn = reconcile_fn
        self.max_workers = max_workers
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._queue: asyncio.Queue[ObjectKey | None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queued: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._dirty: set[ObjectKey] = set()
        self._timers: dict[ObjectKey, asyncio.TimerHandle] = {}
        self._failures: dict[ObjectKey, int] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._shutting_down = False

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._shutting_down

    def __len__(self) -> int:
        return len(self._queued)

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._workers = [asyncio.create_task(self._worker(i)) for i in range(self.max_workers)]
        logger.info(f"Work queue started with {self.max_workers} workers")

    def add(self, key: ObjectKey) -> None:
        """Queue key unless it is already queued; must run on the queue's loop."""
        if self._shutting_down or self._queue is None:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)
        metrics.workqueue_depth.set(len(self._queued))

    def add_after(self, key: ObjectKey, delay: float) -> None:
        """Queue key after delay seconds; an earlier pending timer wins."""
        if self._shutting_down or self._loop is None:
            return
        if delay <= 0:
            self.add(key)
            return
        deadline = self._loop.time() + delay
        existing = self._timers.get(key)
        if existing is not None:
            if existing.when() <= deadline:
                return
            existing.cancel()
        self._timers[key] = self._loop.call_at(deadline, self._fire, key)

    def add_rate_limited(self, key: ObjectKey) -> float:
        """Queue key after its next exponential backoff delay."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self.base_delay * (2 ** failures), self.max_delay)
        metrics.workqueue_retries_total.labels(kind=key.kind).inc()
        self.add_after(key, delay)
        return delay

    def forget(self, key: ObjectKey) -> None:
        self._failures.pop(key, None)

    def _fire(self, key: ObjectKey) -> None:
        self._timers.pop(key, None)
        self.add(key)

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        while True:
            key = await self._queue.get()
            if key is None or self._shutting_down:
                break
            self._queued.discard(key)
            self._processing.add(key)
            metrics.workqueue_depth.set(len(self._queued))
            outcome: ReconcileOutcome | None = None
            try:
                outcome = await asyncio.to_thread(self.reconcile_fn, key)
            except Exception as e:
                logger.error(f"Reconcile of {key} failed: {e}", exc_info=True)
            finally:
                self._processing.discard(key)
            self._schedule(key, outcome)
        logger.debug(f"Worker {index} stopped")

    def _schedule(self, key: ObjectKey, outcome: ReconcileOutcome | None) -> None:
        if outcome is None or outcome.backoff:
            self.add_rate_limited(key)
        else:
            self.forget(key)
            if outcome.requeue_after is not None:
                self.add_after(key, outcome.requeue_after)
        if key in self._dirty:
            self._dirty.discard(key)
            self.add(key)

    async def shutdown(self) -> None:
        """Stop taking work and wait for in-flight passes to finish."""
        if self._shutting_down:
            return
        self._shutting_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if self._queue is not None:
            for _ in self._workers:
                self._queue.put_nowait(None)
        await asyncio.gather(*self._workers)
        self._queued.clear()
        metrics.workqueue_depth.set(0)
        logger.info("Work queue drained")
