# tests/unit/test_scheduler.py

import threading
import time

import pytest

from alb_log_shipper.exceptions import ObjectProcessingError, S3ObjectNotFoundError
from alb_log_shipper.models import ObjectRef
from alb_log_shipper.scheduler import DEFAULT_CONCURRENCY, FanOutScheduler


class ConcurrencyProbe:
    """Records which objects ran and the peak number running at once."""

    def __init__(self, delay: float = 0.02, failures: dict | None = None):
        self.delay = delay
        self.failures = failures or {}
        self.seen: list[ObjectRef] = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, ref: ObjectRef) -> int:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.seen.append(ref)
        try:
            time.sleep(self.delay)
            if ref.key in self.failures:
                raise self.failures[ref.key]
            return 1
        finally:
            with self._lock:
                self.active -= 1


def _refs(count: int) -> list[ObjectRef]:
    return [ObjectRef(bucket="my-bucket", key=f"logs/{i}.log.gz") for i in range(count)]


def test_default_concurrency_is_ten():
    assert DEFAULT_CONCURRENCY == 10


def test_run_processes_every_object():
    probe = ConcurrencyProbe()

    FanOutScheduler(probe).run(_refs(25))

    assert sorted(r.key for r in probe.seen) == sorted(r.key for r in _refs(25))


def test_run_with_no_objects_is_a_noop():
    probe = ConcurrencyProbe()

    FanOutScheduler(probe).run([])

    assert probe.seen == []


def test_concurrency_ceiling_of_one_runs_serially():
    probe = ConcurrencyProbe(delay=0.05)

    FanOutScheduler(probe, concurrency=1).run(_refs(2))

    assert probe.peak == 1
    assert len(probe.seen) == 2


def test_concurrency_ceiling_is_respected():
    probe = ConcurrencyProbe(delay=0.05)

    FanOutScheduler(probe, concurrency=3).run(_refs(12))

    assert probe.peak <= 3
    assert len(probe.seen) == 12


def test_first_error_names_the_object():
    cause = S3ObjectNotFoundError(bucket="my-bucket", key="logs/1.log.gz")
    probe = ConcurrencyProbe(failures={"logs/1.log.gz": cause})

    with pytest.raises(ObjectProcessingError) as exc_info:
        FanOutScheduler(probe).run(_refs(3))

    assert "error processing logs for s3://my-bucket/logs/1.log.gz" in str(exc_info.value)
    assert exc_info.value.__cause__ is cause
    assert exc_info.value.context == {"bucket": "my-bucket", "key": "logs/1.log.gz"}


def test_run_waits_for_every_object_even_after_a_failure():
    finished = []

    def _process(ref: ObjectRef) -> int:
        if ref.key == "fast-failure":
            raise RuntimeError("boom")
        time.sleep(0.1)
        finished.append(ref.key)
        return 1

    refs = [ObjectRef("b", "fast-failure")] + [ObjectRef("b", f"slow-{i}") for i in range(4)]

    with pytest.raises(ObjectProcessingError, match="s3://b/fast-failure: boom"):
        FanOutScheduler(_process).run(refs)

    assert sorted(finished) == [f"slow-{i}" for i in range(4)]


def test_many_failures_do_not_leak_or_block():
    failures = {f"logs/{i}.log.gz": RuntimeError(f"fail {i}") for i in range(30)}
    probe = ConcurrencyProbe(delay=0.001, failures=failures)

    with pytest.raises(ObjectProcessingError):
        FanOutScheduler(probe, concurrency=4).run(_refs(30))

    assert len(probe.seen) == 30
    assert probe.active == 0


def test_invalid_concurrency_is_rejected():
    with pytest.raises(ValueError):
        FanOutScheduler(lambda ref: None, concurrency=0)
