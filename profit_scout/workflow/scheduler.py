"""
Background task scheduler for best-effort work that must not hold up the
user-visible answer (response persistence, summarization).

Jobs run on a small thread pool.  Every job gets a done-callback that logs
its completion time or its failure, so nothing scheduled here can fail
silently.
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from profit_scout.utils.config import get_config
from profit_scout.utils.logging import get_logger

logger = get_logger(__name__)


class TaskScheduler:
    """Thin wrapper around ThreadPoolExecutor with per-job logging."""

    def __init__(self, max_workers: Optional[int] = None, thread_name_prefix: str = "profit-scout"):
        self.max_workers = max_workers or get_config().scheduler.max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=thread_name_prefix,
        )
        self._lock = threading.Lock()
        self._pending = 0
        self._closed = False

    @property
    def pending(self) -> int:
        """Jobs submitted but not yet finished."""
        with self._lock:
            return self._pending

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """
        Schedule ``fn(*args, **kwargs)`` and return its Future.

        Raises RuntimeError once the scheduler has been shut down.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("TaskScheduler has been shut down")
            self._pending += 1
        started = time.monotonic()
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            with self._lock:
                self._pending -= 1
            raise
        future.add_done_callback(lambda f: self._on_done(name, started, f))
        logger.debug("Scheduled job %s", name)
        return future

    def _on_done(self, name: str, started: float, future: Future) -> None:
        with self._lock:
            self._pending -= 1
        elapsed = time.monotonic() - started
        if future.cancelled():
            logger.warning("Job %s cancelled after %.2fs", name, elapsed)
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Job %s failed after %.2fs: %s: %s",
                name, elapsed, type(exc).__name__, exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            logger.info("Job %s completed in %.2fs", name, elapsed)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs; with *wait* block until running jobs finish."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.info("Shutting down task scheduler (wait=%s, pending=%d)", wait, self.pending)
        self._executor.shutdown(wait=wait)
