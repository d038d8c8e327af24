# src/alb_log_shipper/batching.py

"""
Accumulates parsed log entries into CloudWatch Logs `PutLogEvents` batches.

A batch is bounded twice: by the request size CloudWatch computes (the UTF-8
length of every message plus a fixed 26 bytes per event) and by the number
of events. Events inside one request must be in chronological order, so
each batch is sorted by timestamp right before it is sent.
"""

import json
import logging
import math
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

from .exceptions import get_error_context
from .models import LogEntry

logger = logging.getLogger(__name__)

# https://docs.aws.amazon.com/AmazonCloudWatch/latest/logs/cloudwatch_limits_cwl.html
MAX_BATCH_BYTES = 1_048_576
MAX_BATCH_COUNT = 10_000
EVENT_OVERHEAD_BYTES = 26

# One and a quarter batches of parsed entries.
INTAKE_QUEUE_CAPACITY = math.ceil(MAX_BATCH_COUNT * 1.25)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)

# Marks the end of the intake queue.
_CLOSED = object()


@dataclass(frozen=True, slots=True)
class WireEvent:
    """One log event in the shape CloudWatch Logs expects."""

    message: str
    timestamp_millis: int
    size_estimate: int

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "WireEvent":
        message = json.dumps(
            entry.fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
        return cls(
            message=message,
            timestamp_millis=to_unix_millis(entry.timestamp),
            size_estimate=len(message.encode("utf-8")) + EVENT_OVERHEAD_BYTES,
        )

    def to_input_log_event(self) -> dict:
        return {"timestamp": self.timestamp_millis, "message": self.message}


def to_unix_millis(timestamp: datetime) -> int:
    return (timestamp - _EPOCH) // _ONE_MILLISECOND


class LogSink(Protocol):
    """Anything that can deliver one chronologically ordered batch."""

    def put_log_events(self, events: Sequence[WireEvent]) -> None: ...


class ProgressCounter:
    """Running total of shipped entries, shared between threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self, amount: int) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class BatchAccumulator:
    """
    Builds size- and count-bounded batches and hands them to a LogSink.

    Sink failures are logged and the batch is dropped: there is no retry and
    the failure never reaches the caller.
    """

    def __init__(
        self,
        sink: LogSink,
        counter: ProgressCounter,
        max_batch_bytes: int = MAX_BATCH_BYTES,
        max_batch_count: int = MAX_BATCH_COUNT,
    ):
        self._sink = sink
        self._counter = counter
        self._max_batch_bytes = max_batch_bytes
        self._max_batch_count = max_batch_count
        self._pending: list[WireEvent] = []
        self._pending_bytes = 0
        self.dropped = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pending_bytes(self) -> int:
        return self._pending_bytes

    def add(self, entry: LogEntry) -> None:
        event = WireEvent.from_entry(entry)
        # An event larger than a whole batch still goes out, on its own.
        if self._pending and (
            self._pending_bytes + event.size_estimate > self._max_batch_bytes
            or len(self._pending) >= self._max_batch_count
        ):
            self.flush()
        self._pending.append(event)
        self._pending_bytes += event.size_estimate

    def flush(self) -> None:
        if not self._pending:
            return
        batch = sorted(self._pending, key=lambda e: e.timestamp_millis)
        self._pending = []
        self._pending_bytes = 0
        try:
            self._sink.put_log_events(batch)
        except Exception as e:
            self.dropped += len(batch)
            logger.error(
                "Error sending events to CloudWatch Logs. Dropping batch.",
                extra={"batch_size": len(batch), **get_error_context(e)},
            )
            return
        self._counter.increment(len(batch))
        logger.debug("Flushed batch", extra={"batch_size": len(batch)})

    def run(self, intake: "queue.Queue[object]") -> None:
        """Consumes `intake` until it is closed, then flushes what is left."""
        closed = False
        try:
            while not closed:
                item = intake.get()
                if item is _CLOSED:
                    closed = True
                else:
                    self.add(item)  # type: ignore[arg-type]
            self.flush()
        except Exception:
            logger.exception("Batch accumulator failed. Discarding remaining entries.")
            # Keep the producer unblocked until it closes the queue.
            while not closed:
                closed = intake.get() is _CLOSED


def new_intake_queue(maxsize: int = INTAKE_QUEUE_CAPACITY) -> "queue.Queue[object]":
    return queue.Queue(maxsize=maxsize)


def close_intake(intake: "queue.Queue[object]") -> None:
    """Signals the accumulator that no more entries will arrive."""
    intake.put(_CLOSED)
