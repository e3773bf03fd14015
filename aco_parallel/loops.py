"""
aco_parallel/loops.py
─────────────────────
Fork-join loops: parallel_for and parallel_for_each.

Contract
─────────
  parallel_for(start, end, task, step=1)
      Calls task(i) for every i in range(start, end, step). Exactly the
      same index set as the sequential loop: nothing skipped, nothing
      visited twice. Indices in different partitions may run at the same
      time and in any order.

  parallel_for_each(items, task, begin=0, end=None)
      Calls task(item) for every element of items[begin:end], same
      guarantee. The (begin, end) pair plays the role of an iterator pair;
      omitting it processes the whole container.

Both are synchronous: they return only after every partition has
finished (the fork-join barrier). There is no return-value aggregation.
A task that produces results writes them into storage the caller owns,
one slot per index, so partitions never write to the same location.

Partitioning
─────────────
With n indices and T workers (executor.n_workers):

    chunk  = max(n // (T + 1), 1)
    amount = n // chunk
    amount = T            if amount > T
           = amount − 1   otherwise (the caller counts as one worker)

Partitions 0 … amount−1 each hold `chunk` consecutive indices and go to
the pool. The remainder [amount × chunk, n) runs inline on the calling
thread. Example, n=10, T=3:

    chunk = 2, amount = min(5, 3) = 3
    pool   : [0,2) [2,4) [4,6)
    caller : [6,10)

Partitions are cut in *index space* (positions within range(start, end,
step)), not in value space, so a step > 1 can never misalign a partition
boundary and drop a value.

Failure semantics
──────────────────
A raising task stops only its own partition. Every other partition still
runs to completion and is joined. Afterwards a WorkerFailureError is
raised for the lowest-numbered failing partition (the inline partition is
numbered last); other errors are discarded. Side effects already made are
not rolled back.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence, Sized
from concurrent.futures import Future, wait
from itertools import islice
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from aco_parallel.executor import Executor, get_default_executor

T = TypeVar("T")


class WorkerFailureError(RuntimeError):
    """
    Raised after the join when a task failed inside a partition.

    Attributes:
        partition: Index of the failing partition (0-based, dispatched
                   partitions first, the inline partition last).
        cause:     The original exception (also set as __cause__).
    """

    def __init__(self, partition: int, cause: BaseException) -> None:
        self.partition = partition
        self.cause = cause
        super().__init__(
            f"Task failed in partition {partition}: "
            f"{type(cause).__name__}: {cause}"
        )


# ── Partitioning ───────────────────────────────────────────────────────────────

def partition(length: int, n_workers: int) -> Tuple[List[Tuple[int, int]], Tuple[int, int]]:
    """
    Split positions [0, length) into dispatched partitions plus one inline.

    Args:
        length:    Number of positions to cover. Must be ≥ 0.
        n_workers: Usable workers besides the caller. Must be ≥ 0.

    Returns:
        (dispatched, inline) where dispatched is a list of half-open
        (lo, hi) position ranges for the pool and inline is the (lo, hi)
        range the caller runs itself. The ranges are contiguous, ordered,
        non-overlapping and together cover [0, length) exactly.
    """
    if length <= 0:
        return [], (0, 0)

    workers = max(int(n_workers), 0)
    chunk = max(length // (workers + 1), 1)

    amount = length // chunk
    if amount > workers:
        amount = workers
    elif amount > 0:
        amount -= 1

    dispatched = [(k * chunk, (k + 1) * chunk) for k in range(amount)]
    return dispatched, (amount * chunk, length)


def _run_partitions(
    bodies: List[Callable[[], None]],
    inline: Callable[[], None],
    executor: Executor,
) -> None:
    """Dispatch `bodies`, run `inline` here, join everything, then report."""
    futures: List[Future] = [executor.submit(body) for body in bodies]

    inline_error: Optional[BaseException] = None
    try:
        inline()
    except Exception as exc:  # noqa: BLE001 (re-raised after the join)
        inline_error = exc

    # Fork-join barrier: never return while a partition is still running.
    wait(futures)

    for index, future in enumerate(futures):
        error = future.exception()
        if error is not None:
            raise WorkerFailureError(index, error) from error
    if inline_error is not None:
        raise WorkerFailureError(len(futures), inline_error) from inline_error


def _resolve(executor: Optional[Executor]) -> Executor:
    return executor if executor is not None else get_default_executor()


def _usable_workers(executor: Executor) -> int:
    # Nested loop on a pool thread: stay inline rather than re-entering the pool.
    if executor.in_worker():
        return 0
    return executor.n_workers


# ── parallel_for ───────────────────────────────────────────────────────────────

def parallel_for(
    start: int,
    end: int,
    task: Callable[[int], None],
    step: int = 1,
    *,
    executor: Optional[Executor] = None,
) -> None:
    """
    Run task(i) for every i in range(start, end, step), in parallel.

    Args:
        start:    First index (inclusive).
        end:      Stop value (exclusive). end ≤ start is an empty loop.
        task:     Loop body. Must only write to storage owned by index i.
        step:     Positive stride. Default 1.
        executor: Where partitions run. None → get_default_executor().

    Raises:
        ValueError:         step < 1 (forward iteration only).
        WorkerFailureError: a task raised; raised after all partitions joined.

    Example:
        out = [0] * 10
        parallel_for(0, 10, lambda i: out.__setitem__(i, i * i))
    """
    if step < 1:
        raise ValueError(f"parallel_for requires step≥1, got step={step}")

    indices = range(start, end, step)
    if len(indices) == 0:
        return

    exe = _resolve(executor)
    dispatched, (lo, hi) = partition(len(indices), _usable_workers(exe))

    def make_body(part: range) -> Callable[[], None]:
        def body() -> None:
            for i in part:
                task(i)
        return body

    _run_partitions(
        [make_body(indices[a:b]) for a, b in dispatched],
        make_body(indices[lo:hi]),
        exe,
    )


# ── parallel_for_each ──────────────────────────────────────────────────────────

def parallel_for_each(
    items: Iterable[T],
    task: Callable[[T], None],
    begin: int = 0,
    end: Optional[int] = None,
    *,
    executor: Optional[Executor] = None,
) -> None:
    """
    Run task(item) for every element of items[begin:end], in parallel.

    Args:
        items:    Any iterable. Sequences (list, tuple, ndarray rows, range)
                  are partitioned by slicing. Other sized iterables (sets,
                  dict views) are advanced sequentially to cut partitions.
                  Unsized iterators (generators) are materialised first.
        task:     Loop body, called once per element.
        begin:    First position to process (inclusive). Default 0.
        end:      Stop position (exclusive). None → the end of `items`.
        executor: Where partitions run. None → get_default_executor().

    Raises:
        ValueError:         begin < 0, or end < begin.
        WorkerFailureError: a task raised; raised after all partitions joined.
    """
    if begin < 0:
        raise ValueError(f"parallel_for_each requires begin≥0, got begin={begin}")
    if end is not None and end < begin:
        raise ValueError(
            f"parallel_for_each requires end≥begin, got begin={begin}, end={end}"
        )

    if not isinstance(items, Sized):
        items = list(items)

    total = len(items)
    stop = total if end is None else min(end, total)
    length = max(stop - begin, 0)
    if length == 0:
        return

    exe = _resolve(executor)
    dispatched, (lo, hi) = partition(length, _usable_workers(exe))

    def make_body(part: Iterable[T]) -> Callable[[], None]:
        def body() -> None:
            for item in part:
                task(item)
        return body

    if _is_random_access(items):
        bodies = [make_body(_slice(items, begin + a, begin + b)) for a, b in dispatched]
        inline = make_body(_slice(items, begin + lo, begin + hi))
    else:
        # Forward-only: walk the iterator once, handing each partition its
        # own materialised slice.
        iterator = islice(iter(items), begin, stop)
        bodies = [make_body(list(islice(iterator, b - a))) for a, b in dispatched]
        inline = make_body(list(islice(iterator, hi - lo)))

    _run_partitions(bodies, inline, exe)


def _slice(items: Sequence, lo: int, hi: int) -> Iterable:
    """Lazy positional view of items[lo:hi] that does not copy the sequence."""
    return (items[i] for i in range(lo, hi))


def _is_random_access(items: Iterable) -> bool:
    # numpy arrays are not registered as Sequence but support positional access.
    if isinstance(items, Sequence):
        return True
    return hasattr(type(items), "__getitem__") and not isinstance(items, Mapping)
