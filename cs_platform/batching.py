# cs_platform/batching.py
# CineStream - Size/time triggered write batching
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Generic, Sequence, TypeVar

from _logging import log

__all__ = ["BatchQueue"]

T = TypeVar("T")

TimerFactory = Callable[[float, Callable[[], None]], Any]


class BatchQueue(Generic[T]):
    """Queue that writes in batches.

    A flush happens as soon as `batch_size` items are queued, or
    `timeout_s` after the first item of a quiet period. Flushes are
    single-flight; a failed write keeps the items queued and re-arms the
    timer so the next cycle retries them.
    Subclasses implement `write_batch`.
    """

    name = "BATCH"

    def __init__(
        self,
        *,
        batch_size: int,
        timeout_s: float,
        timer_factory: TimerFactory | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.batch_size = max(1, int(batch_size))
        self.timeout_s = max(0.0, float(timeout_s))
        self._timer_factory = timer_factory or threading.Timer
        self._executor = executor
        self._own_executor = executor is None
        self._queue: list[T] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._timer: Any = None
        self.last_error: str | None = None

    def _log(self, msg: str, level: str = "INFO") -> None:
        log(msg, level=level, module=self.name)

    # subclass hook
    def write_batch(self, items: Sequence[T]) -> None:
        raise NotImplementedError

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def enqueue(self, item: T) -> None:
        with self._lock:
            self._queue.append(item)
            if len(self._queue) < self.batch_size:
                self._arm_timer_locked()
                return
        self.flush()

    # timer
    def _arm_timer_locked(self) -> None:
        if self._timer is not None or self.timeout_s <= 0:
            return
        t = self._timer_factory(self.timeout_s, self._on_timer)
        try:
            t.daemon = True
        except AttributeError:
            pass
        self._timer = t
        t.start()

    def _cancel_timer_locked(self) -> None:
        t, self._timer = self._timer, None
        if t is not None:
            t.cancel()

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.flush()

    # flushing
    def _drain_once(self) -> bool:
        with self._lock:
            self._cancel_timer_locked()
            batch = list(self._queue)
        if not batch:
            return True
        try:
            self.write_batch(batch)
        except Exception as e:
            self.last_error = str(e)
            with self._lock:
                depth = len(self._queue)
                self._arm_timer_locked()
            self._log(f"Flush of {len(batch)} item(s) failed, {depth} kept for retry: {e}", level="WARN")
            return False
        with self._lock:
            del self._queue[: len(batch)]
            if self._queue:
                self._arm_timer_locked()
        self.last_error = None
        self._log(f"Flushed {len(batch)} item(s)", level="DEBUG")
        return True

    def flush(self) -> bool:
        """Write whatever is queued now. Returns False when the write failed or another flush is running."""
        if not self._flush_lock.acquire(blocking=False):
            return False
        try:
            return self._drain_once()
        finally:
            self._flush_lock.release()

    def flush_all(self, timeout_s: float | None = None) -> bool:
        """Synchronous drain: waits for a running flush, then writes until the queue is empty."""
        acquired = self._flush_lock.acquire(timeout=-1 if timeout_s is None else max(0.0, float(timeout_s)))
        if not acquired:
            self._log("Drain skipped, a flush is still running", level="WARN")
            return False
        try:
            while True:
                if not self._drain_once():
                    return False
                with self._lock:
                    if not self._queue:
                        return True
        finally:
            self._flush_lock.release()

    def flush_async(self, *, timeout_s: float = 3.0, on_done: Callable[[bool], None] | None = None) -> Future:
        """Page-hide/unload path: drain in the background, report the outcome to `on_done`."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name.lower()}-flush")
        fut = self._executor.submit(self.flush_all, timeout_s)

        if on_done is not None:
            def _done(f: Future) -> None:
                ok = (not f.cancelled()) and f.exception() is None and bool(f.result())
                try:
                    on_done(ok)
                except Exception as e:
                    self._log(f"Flush callback failed: {e}", level="WARN")

            fut.add_done_callback(_done)
        return fut

    def close(self, timeout_s: float = 5.0) -> bool:
        with self._lock:
            self._cancel_timer_locked()
        ok = self.flush_all(timeout_s)
        if self._executor is not None and self._own_executor:
            self._executor.shutdown(wait=False)
            self._executor = None
        if not ok:
            self._log(f"Shutdown with {self.pending()} unflushed item(s)", level="WARN")
        return ok
