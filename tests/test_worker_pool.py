"""Tests for ChunkWorkerPool and ChunkHandle."""

import threading
import time

import pytest

from app.services.denoise_pipeline.models import ChunkOutcome, FailureKind
from app.services.denoise_pipeline.worker_pool import ChunkHandle, ChunkWorkerPool


class IndexedTask:
    def __init__(self, index, result=True, delay=0.0, exc=None):
        self.index = index
        self.result = result
        self.delay = delay
        self.exc = exc

    def __call__(self):
        time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        if self.result is True:
            return ChunkOutcome.success(self.index)
        if self.result is False:
            return ChunkOutcome.failure(self.index, f"chunk {self.index}: bad")
        return self.result


class TestSubmit:
    def test_returns_handle_per_task(self):
        with ChunkWorkerPool(max_workers=2) as pool:
            handles = [pool.submit(IndexedTask(i)) for i in range(5)]
            outcomes = [h.result() for h in handles]

        assert all(isinstance(h, ChunkHandle) for h in handles)
        assert [o.index for o in outcomes] == [0, 1, 2, 3, 4]
        assert all(o.succeeded for o in outcomes)
        assert pool.submitted == 5

    def test_submit_does_not_block_on_running_tasks(self):
        release = threading.Event()

        def blocked():
            release.wait(5)
            return ChunkOutcome.success(0)

        with ChunkWorkerPool(max_workers=1) as pool:
            start = time.monotonic()
            first = pool.submit(blocked, index=0)
            second = pool.submit(IndexedTask(1))
            submit_time = time.monotonic() - start
            assert not first.done()
            release.set()
            assert second.result(timeout=5).succeeded

        assert submit_time < 1.0

    def test_explicit_index_for_plain_callable(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            handle = pool.submit(lambda: ChunkOutcome.success(7), index=7)
            assert handle.index == 7
            assert handle.result().succeeded

    def test_callable_without_index_is_rejected(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            with pytest.raises(TypeError):
                pool.submit(lambda: ChunkOutcome.success(0))

    def test_submit_after_shutdown_raises(self):
        pool = ChunkWorkerPool(max_workers=1)
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(IndexedTask(0))

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            ChunkWorkerPool(max_workers=0)

    def test_default_worker_count_from_system(self, monkeypatch):
        monkeypatch.setattr(
            "app.services.denoise_pipeline.worker_pool.calculate_optimal_workers", lambda: 3
        )
        with ChunkWorkerPool() as pool:
            assert pool.max_workers == 3


class TestFaultCapture:
    def test_exception_becomes_pool_fault_outcome(self):
        with ChunkWorkerPool(max_workers=2) as pool:
            handle = pool.submit(IndexedTask(2, exc=ZeroDivisionError("boom")))
            outcome = handle.result()

        assert outcome.index == 2
        assert outcome.succeeded is False
        assert outcome.kind == FailureKind.POOL_FAULT
        assert "ZeroDivisionError" in outcome.diagnostic
        assert "chunk 2" in outcome.diagnostic

    def test_fault_does_not_affect_other_tasks(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            handles = [
                pool.submit(IndexedTask(0, exc=RuntimeError("crash"))),
                pool.submit(IndexedTask(1)),
                pool.submit(IndexedTask(2)),
            ]
            outcomes = [h.result() for h in handles]

        assert [o.succeeded for o in outcomes] == [False, True, True]

    def test_non_outcome_return_is_a_fault(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            outcome = pool.submit(IndexedTask(0, result="yes")).result()

        assert outcome.succeeded is False
        assert outcome.kind == FailureKind.POOL_FAULT

    def test_bare_bool_return_is_a_fault(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            outcome = pool.submit(lambda: True, index=4).result()

        assert outcome.index == 4
        assert outcome.succeeded is False
        assert outcome.kind == FailureKind.POOL_FAULT

    def test_mismatched_outcome_index_is_a_fault(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            outcome = pool.submit(lambda: ChunkOutcome.success(9), index=1).result()

        assert outcome.index == 1
        assert outcome.succeeded is False

    def test_elapsed_time_is_recorded(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            outcome = pool.submit(IndexedTask(0, delay=0.05)).result()

        assert outcome.elapsed_seconds is not None
        assert outcome.elapsed_seconds >= 0.04


class TestHandle:
    def test_handle_has_no_cancel(self):
        with ChunkWorkerPool(max_workers=1) as pool:
            handle = pool.submit(IndexedTask(0))
            assert not hasattr(handle, "cancel")
            handle.result()

    def test_wait_with_timeout(self):
        release = threading.Event()

        def blocked():
            release.wait(5)
            return ChunkOutcome.success(0)

        with ChunkWorkerPool(max_workers=1) as pool:
            handle = pool.submit(blocked, index=0)
            assert handle.wait(timeout=0.01) is False
            release.set()
            assert handle.wait(timeout=5) is True
            assert handle.done()

    def test_done_callback_receives_handle(self):
        seen = []
        with ChunkWorkerPool(max_workers=1) as pool:
            handle = pool.submit(IndexedTask(3))
            handle.add_done_callback(seen.append)
            handle.result()
        assert seen == [handle]


class TestShutdown:
    def test_shutdown_waits_for_queued_tasks(self):
        finished = []
        lock = threading.Lock()

        def make(i):
            def task():
                time.sleep(0.02)
                with lock:
                    finished.append(i)
                return ChunkOutcome.success(i)
            return task

        pool = ChunkWorkerPool(max_workers=2)
        handles = [pool.submit(make(i), index=i) for i in range(6)]
        pool.shutdown()

        assert sorted(finished) == list(range(6))
        assert all(h.done() for h in handles)

    def test_shutdown_is_idempotent(self):
        pool = ChunkWorkerPool(max_workers=1)
        pool.shutdown()
        pool.shutdown()


class TestBaseExceptionCapture:
    def test_system_exit_becomes_pool_fault(self):
        def exits():
            raise SystemExit("collaborator called sys.exit")

        with ChunkWorkerPool(max_workers=2) as pool:
            handles = [
                pool.submit(IndexedTask(0)),
                pool.submit(exits, index=1),
                pool.submit(IndexedTask(2)),
            ]
            outcomes = [h.result() for h in handles]

        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert outcomes[1].kind == FailureKind.POOL_FAULT
        assert "SystemExit" in outcomes[1].diagnostic

    def test_keyboard_interrupt_is_not_swallowed(self):
        def interrupted():
            raise KeyboardInterrupt

        with ChunkWorkerPool(max_workers=1) as pool:
            handle = pool.submit(interrupted, index=0)
            with pytest.raises(KeyboardInterrupt):
                handle.result()
