"""
aco_parallel/executor.py
────────────────────────
The executor capability: WHERE partitions of a parallel loop actually run.

Why a separate "executor" object?
──────────────────────────────────
The loop functions in loops.py only know how to split an index range into
contiguous partitions and join them again. Whether a partition runs on a
pooled thread or inline on the caller is a deployment decision, so it is
made once, at configuration time, by choosing an executor:

  SequentialExecutor         → zero workers. Every partition runs inline.
                               Used in tests and on single-core hosts.
  ThreadPoolExecutorBackend  → a bounded concurrent.futures pool of
                               `n_workers` threads. The caller thread is
                               never part of the pool; it executes the
                               last partition itself.

Both expose the same tiny surface:
  n_workers        → how many partitions may run concurrently besides
                     the caller.
  submit(fn)       → schedule fn() and return a Future.
  in_worker()      → True when called from one of this executor's threads.
  shutdown()       → release the threads (no-op for the sequential one).

Pool sizing
────────────
  available_parallelism()            → hardware threads, read once by the
                                       caller (never cached here).
  default_worker_count(parallelism)  → parallelism − 1, floored at 0.
                                       One hardware thread is left for
                                       the caller, which runs a partition
                                       inline.

Worker-count is always passed into the executor's constructor, so a test
can build ThreadPoolExecutorBackend(3) on a 64-core CI runner and get
exactly three workers.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

THREAD_NAME_PREFIX: str = "aco-parallel"
"""Name prefix for pooled worker threads (visible in thread dumps)."""


# ── Pool sizing ────────────────────────────────────────────────────────────────

def available_parallelism() -> int:
    """
    Number of hardware threads usable by this process.

    Prefers the scheduler affinity mask (respects taskset / cgroup CPU
    pinning on Linux) and falls back to os.cpu_count(). Never returns
    less than 1.
    """
    sched_getaffinity = getattr(os, "sched_getaffinity", None)
    if sched_getaffinity is not None:
        try:
            return max(len(sched_getaffinity(0)), 1)
        except OSError:
            pass
    return max(os.cpu_count() or 1, 1)


def default_worker_count(parallelism: int) -> int:
    """
    Workers to create for a host with `parallelism` hardware threads.

    The calling thread always executes one partition inline, so the pool
    only needs parallelism − 1 threads. A single-thread host gets 0
    workers, which makes every loop purely sequential.
    """
    return max(int(parallelism) - 1, 0)


# ── Executors ──────────────────────────────────────────────────────────────────

class SequentialExecutor:
    """
    Executor with no workers: the loop functions run every index inline.

    submit() exists for interface symmetry. It runs fn immediately and
    returns an already-completed Future, capturing any exception in it
    rather than raising, exactly like a pooled future would.
    """

    n_workers: int = 0

    def submit(self, fn: Callable[[], None]) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn())
        except Exception as exc:  # noqa: BLE001 (delivered through the future)
            future.set_exception(exc)
        return future

    def in_worker(self) -> bool:
        return False

    def shutdown(self, wait: bool = True) -> None:
        return None

    def __enter__(self) -> "SequentialExecutor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return "SequentialExecutor(n_workers=0)"


class ThreadPoolExecutorBackend:
    """
    Bounded thread pool used for fork-join partitions.

    Lifecycle:
        1. __init__(n_workers)  → records the size; no threads yet.
        2. first submit()       → creates the ThreadPoolExecutor lazily.
        3. shutdown()           → joins and drops the pool. A later
                                  submit() creates a fresh one.

    The pool is created lazily so that constructing an engine (which
    builds its own executor) costs nothing when it never goes parallel,
    e.g. for tiny inputs that fit in the inline partition.

    Nested loops:
        A task running on a pool thread may itself call parallel_for.
        Dispatching that inner loop back onto the same saturated pool
        could deadlock (every worker waiting on work that has no free
        worker). in_worker() lets the loop functions detect this and run
        the inner loop inline instead.
    """

    def __init__(self, n_workers: int) -> None:
        """
        Args:
            n_workers: Number of pooled threads. Must be ≥ 0.
                       0 is allowed and behaves like SequentialExecutor.

        Raises:
            ValueError: if n_workers is negative.
        """
        if n_workers < 0:
            raise ValueError(
                f"ThreadPoolExecutorBackend requires n_workers≥0, got {n_workers}"
            )
        self.n_workers: int = int(n_workers)
        self._pool: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._local = threading.local()
        logger.debug("Thread backend configured with %d worker(s)", self.n_workers)

    def _mark_worker(self) -> None:
        self._local.is_worker = True

    def _ensure_pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=max(self.n_workers, 1),
                    thread_name_prefix=THREAD_NAME_PREFIX,
                    initializer=self._mark_worker,
                )
                logger.debug("Started thread pool with %d worker(s)", self.n_workers)
            return self._pool

    def submit(self, fn: Callable[[], None]) -> Future:
        return self._ensure_pool().submit(fn)

    def in_worker(self) -> bool:
        return getattr(self._local, "is_worker", False)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)

    def __enter__(self) -> "ThreadPoolExecutorBackend":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        started = self._pool is not None
        return f"ThreadPoolExecutorBackend(n_workers={self.n_workers}, started={started})"


Executor = Union[SequentialExecutor, ThreadPoolExecutorBackend]


def resolve_executor(name: str, n_workers: Optional[int] = None) -> Executor:
    """
    Build an executor from a configuration name.

    Args:
        name:      "sequential" or "threads" (case-insensitive).
        n_workers: Pool size for "threads". None → derived from
                   available_parallelism() via default_worker_count().

    Raises:
        ValueError: for an unknown backend name.
    """
    key = (name or "threads").lower()
    if key == "sequential":
        return SequentialExecutor()
    if key == "threads":
        if n_workers is None:
            n_workers = default_worker_count(available_parallelism())
        return ThreadPoolExecutorBackend(n_workers)
    raise ValueError(f"Unknown executor backend {name!r}; expected 'sequential' or 'threads'")


# ── Process-wide default ───────────────────────────────────────────────────────

_default_executor: Optional[ThreadPoolExecutorBackend] = None
_default_lock = threading.Lock()


def get_default_executor() -> ThreadPoolExecutorBackend:
    """
    Executor used by parallel_for / parallel_for_each when none is passed.

    Built once, on first use, from the hardware thread count. This is a
    convenience for ad-hoc loop calls only. AntClusteringMean never uses
    it: it takes an executor, or builds its own with resolve_executor()
    from a pool size fixed at construction.
    """
    global _default_executor
    with _default_lock:
        if _default_executor is None:
            _default_executor = ThreadPoolExecutorBackend(
                default_worker_count(available_parallelism())
            )
        return _default_executor
