"""
Chunk Worker Pool

Fixed-size pool of reusable worker threads for chunk tasks, built on
ThreadPoolExecutor. Chunk tasks spend their time waiting on external
processes (deep-filter, ffmpeg), so threads give real parallelism here.

Guarantees:
- submit() returns a ChunkHandle immediately
- every submitted task yields exactly one ChunkOutcome
- an exception escaping a task (SystemExit included, KeyboardInterrupt
  excepted) becomes a failed outcome (POOL_FAULT);
  it never reaches the caller and never kills a worker
- handles cannot be cancelled; shutdown() waits for queued and
  in-flight tasks

Example:
    >>> with ChunkWorkerPool(max_workers=4) as pool:
    ...     handles = [pool.submit(task) for task in tasks]
    ...     outcomes = [handle.result() for handle in handles]
"""

import logging
import threading
import time
import traceback
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional

from lib.system import calculate_optimal_workers

from .models import ChunkOutcome, FailureKind

logger = logging.getLogger(__name__)

ChunkCallable = Callable[[], ChunkOutcome]


class ChunkHandle:
    """
    Handle for one submitted chunk task.

    Wraps the executor future without exposing cancel(): a chunk that has
    been submitted always runs to completion.
    """

    def __init__(self, index: int, future: Future):
        self.index = index
        self._future = future

    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the task finishes or timeout expires. Returns done()."""
        done, _ = wait([self._future], timeout=timeout)
        return bool(done)

    def result(self, timeout: Optional[float] = None) -> ChunkOutcome:
        """Block until the outcome is available."""
        return self._future.result(timeout=timeout)

    def add_done_callback(self, fn: Callable[['ChunkHandle'], None]) -> None:
        self._future.add_done_callback(lambda _future: fn(self))

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"ChunkHandle(index={self.index}, {state})"


class ChunkWorkerPool:
    """
    Bounded pool that runs chunk tasks and returns a handle per task.

    Args:
        max_workers: Worker thread count (default: calculate_optimal_workers())
        thread_name_prefix: Prefix for worker thread names (shows up in logs)
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        thread_name_prefix: str = "chunk-worker",
    ):
        if max_workers is None:
            max_workers = calculate_optimal_workers()
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix,
        )
        self._lock = threading.Lock()
        self._submitted = 0
        self._closed = False

        logger.info(f"Chunk worker pool started: {max_workers} threads")

    @property
    def submitted(self) -> int:
        return self._submitted

    def submit(self, task: ChunkCallable, index: Optional[int] = None) -> ChunkHandle:
        """
        Enqueue a zero-argument callable returning a ChunkOutcome.

        Args:
            task: The chunk task
            index: Chunk index; defaults to ``task.index``

        Returns:
            ChunkHandle for the task's outcome

        Raises:
            TypeError: If no chunk index can be determined
            RuntimeError: If the pool has been shut down
        """
        if index is None:
            index = getattr(task, 'index', None)
        if index is None:
            raise TypeError(f"Cannot submit {task!r}: no chunk index given")

        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot submit to a pool that has been shut down")
            future = self._executor.submit(_run_guarded, task, index)
            self._submitted += 1

        logger.debug(f"Submitted chunk {index}")
        return ChunkHandle(index, future)

    def shutdown(self) -> None:
        """Wait for every queued and in-flight task, then release the workers."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        logger.debug(f"Shutting down chunk worker pool ({self._submitted} tasks submitted)")
        self._executor.shutdown(wait=True, cancel_futures=False)

    def __enter__(self) -> 'ChunkWorkerPool':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()


def _run_guarded(task: ChunkCallable, index: int) -> ChunkOutcome:
    """Run one task on a worker thread, turning any escape into a failed outcome."""
    start = time.monotonic()
    try:
        outcome = task()
    except KeyboardInterrupt:
        raise
    except BaseException as e:
        # SystemExit included; only KeyboardInterrupt propagates
        elapsed = time.monotonic() - start
        logger.error(
            f"✗ chunk {index}: unexpected {type(e).__name__} in worker: {e}\n"
            f"{traceback.format_exc()}"
        )
        return ChunkOutcome(
            index=index,
            succeeded=False,
            diagnostic=f"chunk {index}: internal fault {type(e).__name__}: {e}",
            kind=FailureKind.POOL_FAULT,
            elapsed_seconds=elapsed,
        )

    elapsed = time.monotonic() - start

    if not isinstance(outcome, ChunkOutcome):
        logger.error(f"✗ chunk {index}: task returned {type(outcome).__name__}, not ChunkOutcome")
        return ChunkOutcome(
            index=index,
            succeeded=False,
            diagnostic=f"chunk {index}: internal fault: task returned {outcome!r}",
            kind=FailureKind.POOL_FAULT,
            elapsed_seconds=elapsed,
        )

    if outcome.index != index:
        logger.error(f"✗ chunk {index}: task reported outcome for chunk {outcome.index}")
        return ChunkOutcome(
            index=index,
            succeeded=False,
            diagnostic=f"chunk {index}: internal fault: outcome carried index {outcome.index}",
            kind=FailureKind.POOL_FAULT,
            elapsed_seconds=elapsed,
        )

    return ChunkOutcome(
        index=outcome.index,
        succeeded=outcome.succeeded,
        diagnostic=outcome.diagnostic,
        kind=outcome.kind,
        elapsed_seconds=elapsed,
    )
