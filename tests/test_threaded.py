"""Tests for the thread-based executor and topics."""

import gc
import threading
import time
import weakref

import pytest
from serial_pubsub.core.config import Priority
from serial_pubsub.core.errors import PublishError
from serial_pubsub.core.threaded import ThreadSerialExecutor, ThreadTopic


class TestThreadSerialExecutor:
    """Tests for ThreadSerialExecutor class."""

    @pytest.fixture
    def executor(self):
        """Create a test executor and shut it down afterwards."""
        executor = ThreadSerialExecutor("test_thread_executor")
        yield executor
        executor.shutdown()

    def test_create_executor(self, executor: ThreadSerialExecutor) -> None:
        assert executor.is_running
        assert executor.statistics.tasks_submitted == 0

    def test_submit_result(self, executor: ThreadSerialExecutor) -> None:
        assert executor.submit(lambda: 7).result(timeout=1) == 7

    def test_tasks_run_on_worker(self, executor: ThreadSerialExecutor) -> None:
        """Test tasks run on the executor's own thread."""
        assert executor.submit(executor.in_worker).result(timeout=1)
        assert not executor.in_worker()

    def test_concurrent_submitters(self, executor: ThreadSerialExecutor) -> None:
        """Test submissions from many threads never overlap."""
        active = 0
        peak = 0
        guard = threading.Lock()
        futures = []

        def task() -> None:
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.001)
            with guard:
                active -= 1

        def submitter() -> None:
            for _ in range(10):
                futures.append(executor.submit(task))

        threads = [threading.Thread(target=submitter) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for f in futures:
            f.result(timeout=5)

        assert peak == 1
        assert executor.statistics.tasks_completed == 40

    def test_concurrent_submitters_keep_per_thread_order(self, executor: ThreadSerialExecutor) -> None:
        """Test each thread's submissions run in the order that thread made them."""
        executed: list[tuple[int, int]] = []
        futures = []
        start = threading.Barrier(4)

        def submitter(thread_index: int) -> None:
            start.wait()
            for seq in range(25):
                futures.append(executor.submit(lambda i=thread_index, s=seq: executed.append((i, s))))

        threads = [threading.Thread(target=submitter, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for f in futures:
            f.result(timeout=5)

        assert len(executed) == 100
        for thread_index in range(4):
            seqs = [seq for index, seq in executed if index == thread_index]
            assert seqs == list(range(25))

    def test_dropped_executor_stops_worker(self) -> None:
        """Test an executor nobody references is collected and its thread exits."""
        executor = ThreadSerialExecutor("dropped")
        assert executor.submit(lambda: 7).result(timeout=1) == 7
        executor.join()
        thread = executor._thread
        ref = weakref.ref(executor)

        del executor
        gc.collect()

        assert ref() is None
        thread.join(timeout=1)
        assert not thread.is_alive()

    def test_failure_does_not_stop_queue(self, executor: ThreadSerialExecutor) -> None:
        def boom() -> None:
            raise ValueError("boom")

        failing = executor.submit(boom)
        following = executor.submit(lambda: "ok")

        with pytest.raises(ValueError):
            failing.result(timeout=1)
        assert following.result(timeout=1) == "ok"
        assert executor.statistics.tasks_failed == 1

    def test_submit_after_shutdown(self) -> None:
        executor = ThreadSerialExecutor()
        executor.shutdown()

        assert not executor.is_running
        with pytest.raises(RuntimeError):
            executor.submit(lambda: None)

    def test_shutdown_runs_queued(self) -> None:
        """Test shutdown lets queued work finish."""
        done: list[int] = []
        with ThreadSerialExecutor() as executor:
            for i in range(5):
                executor.submit(lambda i=i: done.append(i))

        assert done == [0, 1, 2, 3, 4]


class TestThreadTopic:
    """Tests for ThreadTopic class."""

    @pytest.fixture
    def executor(self):
        executor = ThreadSerialExecutor("test_thread_executor")
        yield executor
        executor.shutdown()

    def test_create_topic(self, executor: ThreadSerialExecutor) -> None:
        topic = executor.create_topic("low", name="events")

        assert isinstance(topic, ThreadTopic)
        assert topic.priority is Priority.BATCHED
        assert topic.name == "events"

    def test_publish_no_subscribers(self, executor: ThreadSerialExecutor) -> None:
        topic = executor.create_topic(Priority.IMMEDIATE)

        assert topic.publish(1).result(timeout=1) is None
        assert executor.statistics.tasks_submitted == 0

    def test_batched_delivery(self, executor: ThreadSerialExecutor) -> None:
        """Test a batched publish covers every subscriber once, in order."""
        topic = executor.create_topic(Priority.BATCHED)
        log: list[int] = []
        for i in range(45):
            topic.subscribe(lambda v, i=i: log.append(i))

        topic.publish("x").result(timeout=5)

        assert log == list(range(45))
        assert executor.statistics.tasks_submitted == 3

    def test_immediate_block_is_contiguous(self, executor: ThreadSerialExecutor) -> None:
        """Test an immediate publish never interleaves with batched groups."""
        log: list[str] = []
        a = executor.create_topic(Priority.IMMEDIATE)
        b = executor.create_topic(Priority.BATCHED)
        for i in range(1, 4):
            a.subscribe(lambda v, i=i: log.append(f"a{i}"))
        for i in range(1, 46):
            b.subscribe(lambda v, i=i: log.append(f"b{i}"))

        published_b = b.publish(None)
        published_a = a.publish(None)
        published_b.result(timeout=5)
        published_a.result(timeout=5)

        start = log.index("a1")
        assert log[start:start + 3] == ["a1", "a2", "a3"]
        assert [x for x in log if x.startswith("b")] == [f"b{i}" for i in range(1, 46)]
        # The block lands between two batches or after the last one
        assert start in (20, 40, 45)

    def test_failed_groups_reported(self, executor: ThreadSerialExecutor) -> None:
        topic = executor.create_topic(Priority.BATCHED, batch_size=1)
        log: list[str] = []

        def boom(value: object) -> None:
            raise KeyError("missing")

        topic.subscribe(boom)
        topic.subscribe(lambda v: log.append("after"))

        with pytest.raises(PublishError) as info:
            topic.publish(None).result(timeout=1)

        assert log == ["after"]
        assert [f.index for f in info.value.failures] == [0]

    def test_abort_on_failure(self, executor: ThreadSerialExecutor) -> None:
        topic = executor.create_topic(Priority.BATCHED, batch_size=1, abort_on_failure=True)
        log: list[str] = []

        def boom(value: object) -> None:
            raise KeyError("missing")

        topic.subscribe(boom)
        topic.subscribe(lambda v: log.append("never"))

        with pytest.raises(PublishError):
            topic.publish(None).result(timeout=1)

        assert log == []

    def test_reentrant_publish(self, executor: ThreadSerialExecutor) -> None:
        """Test publishing from a subscriber does not deadlock."""
        log: list[str] = []
        inner = executor.create_topic(Priority.IMMEDIATE)
        outer = executor.create_topic(Priority.IMMEDIATE)
        pending = []

        inner.subscribe(lambda v: log.append("inner"))

        def relay(value: object) -> None:
            log.append("outer")
            pending.append(inner.publish(value))

        outer.subscribe(relay)

        outer.publish("x").result(timeout=1)
        pending[0].result(timeout=1)

        assert log == ["outer", "inner"]
