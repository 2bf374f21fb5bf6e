"""Tests for the bounded EndorsingPool."""

import sys
import threading
import time
from pathlib import Path

import pytest

import batesstamp.worker as worker
from batesstamp.annotator import Endorser
from batesstamp.bates import BatesNumber
from batesstamp.exceptions import AnnotationError, ChannelTransportError
from batesstamp.models import EndorseTask, TaskResult
from batesstamp.pool import EndorsingPool


def _task(name: str) -> EndorseTask:
    return EndorseTask(Path(f"/in/{name}.tif"), Path(f"/out/{name}.tif"), BatesNumber("X_"))


class InstrumentedRunner:
    """Fake worker that records how many calls overlap."""

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.lock = threading.Lock()
        self.current = 0
        self.max_seen = 0
        self.started = []

    def __call__(self, task: EndorseTask) -> TaskResult:
        with self.lock:
            self.current += 1
            self.max_seen = max(self.max_seen, self.current)
            self.started.append(task.source.stem)
        try:
            time.sleep(self.delay)
            return TaskResult(str(task.source), str(task.destination), 2)
        finally:
            with self.lock:
                self.current -= 1


class HangOnNamedFile(Endorser):
    """Real endorser that never finishes a file named hang.tif."""

    def endorse(self, source, destination, starting_bates):
        if Path(source).stem == "hang":
            time.sleep(60)
        return super().endorse(source, destination, starting_bates)


class TestCapacity:
    """Tests for the concurrency bound."""

    @pytest.mark.parametrize("capacity,tasks", [(1, 5), (3, 12), (4, 4)])
    def test_at_most_capacity_tasks_are_active(self, capacity, tasks):
        runner = InstrumentedRunner()
        with EndorsingPool(capacity=capacity, runner=runner) as pool:
            futures = [pool.submit(_task(f"t{i}")) for i in range(tasks)]
            results = [f.result(timeout=10) for f in futures]

        assert len(results) == tasks
        assert runner.max_seen <= capacity
        assert pool.peak_active <= capacity
        assert pool.active == 0

    def test_capacity_is_used(self):
        runner = InstrumentedRunner(delay=0.2)
        with EndorsingPool(capacity=3, runner=runner) as pool:
            for f in [pool.submit(_task(f"t{i}")) for i in range(6)]:
                f.result(timeout=10)
        assert runner.max_seen == 3

    def test_admission_is_fifo(self):
        runner = InstrumentedRunner(delay=0.01)
        names = [f"t{i}" for i in range(8)]
        with EndorsingPool(capacity=1, runner=runner) as pool:
            for f in [pool.submit(_task(n)) for n in names]:
                f.result(timeout=10)
        assert runner.started == names

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            EndorsingPool(capacity=0)


class TestFutures:
    """Tests for future resolution semantics."""

    def test_submit_returns_immediately(self):
        release = threading.Event()

        def runner(task):
            release.wait(10)
            return TaskResult(str(task.source), str(task.destination), 1)

        with EndorsingPool(capacity=1, runner=runner) as pool:
            start = time.monotonic()
            futures = [pool.submit(_task(f"t{i}")) for i in range(3)]
            assert time.monotonic() - start < 1
            assert not any(f.done() for f in futures)
            release.set()

    def test_multiple_readers_see_the_same_result(self):
        with EndorsingPool(capacity=2, runner=InstrumentedRunner(delay=0)) as pool:
            future = pool.submit(_task("a"))
            first = future.result(timeout=10)
            assert future.result() is first
            assert first.page_count == 2

    def test_failures_stay_local(self):
        def runner(task):
            if task.source.stem == "bad":
                raise AnnotationError("cannot read bad.tif")
            return TaskResult(str(task.source), str(task.destination), 1)

        with EndorsingPool(capacity=2, runner=runner) as pool:
            good = [pool.submit(_task(f"ok{i}")) for i in range(3)]
            bad = pool.submit(_task("bad"))
            more = pool.submit(_task("ok-after"))

            assert isinstance(bad.exception(timeout=10), AnnotationError)
            assert [f.result(timeout=10).page_count for f in good + [more]] == [1, 1, 1, 1]

    def test_hung_task_does_not_block_others(self):
        release = threading.Event()

        def runner(task):
            if task.source.stem == "hang":
                release.wait(30)
            return TaskResult(str(task.source), str(task.destination), 1)

        pool = EndorsingPool(capacity=2, runner=runner)
        try:
            hung = pool.submit(_task("hang"))
            others = [pool.submit(_task(f"t{i}")) for i in range(5)]

            assert all(f.result(timeout=10).page_count == 1 for f in others)
            assert not hung.done()
        finally:
            release.set()
            pool.shutdown(wait=True)
        assert hung.result().page_count == 1

    def test_submit_after_shutdown(self):
        pool = EndorsingPool(capacity=1, runner=InstrumentedRunner(delay=0))
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(_task("late"))


@pytest.mark.skipif(sys.platform == "win32", reason="workers are forked")
class TestWithForkedWorkers:
    """Tests for the default runner, which forks a process per task."""

    def test_pool_endorses_files(self, tiff_factory, tmp_path):
        sources = [tiff_factory(f"f{i}.tif", pages=i + 1) for i in range(3)]
        out = tmp_path / "out"
        out.mkdir()

        with EndorsingPool(capacity=2, poll_interval=0.05, receive_timeout=60) as pool:
            futures = [
                pool.submit(EndorseTask(s, out / s.name, BatesNumber("X_"))) for s in sources
            ]
            pages = [f.result(timeout=60).page_count for f in futures]

        assert pages == [1, 2, 3]
        assert pool.peak_active <= 2
        assert sorted(p.name for p in out.iterdir()) == ["f0.tif", "f1.tif", "f2.tif"]

    def test_hung_child_times_out_without_blocking_siblings(self, tiff_factory, tmp_path, monkeypatch):
        monkeypatch.setattr(worker, "Endorser", HangOnNamedFile)
        sources = [tiff_factory(f"f{i}.tif", pages=1) for i in range(3)]
        out = tmp_path / "out"
        out.mkdir()

        with EndorsingPool(capacity=2, poll_interval=0.05, receive_timeout=1) as pool:
            hung = pool.submit(EndorseTask(tmp_path / "hang.tif", out / "hang.tif", BatesNumber("X_")))
            others = [pool.submit(EndorseTask(s, out / s.name, BatesNumber("X_"))) for s in sources]

            assert [f.result(timeout=30).page_count for f in others] == [1, 1, 1]
            assert isinstance(hung.exception(timeout=30), ChannelTransportError)
        assert pool.active == 0
