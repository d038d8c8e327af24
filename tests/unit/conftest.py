"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import gzip
import os
import threading
import uuid
from typing import Callable, Sequence
from unittest.mock import MagicMock

import pytest

# Powertools reads these when alb_log_shipper.app is imported during collection.
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "alb-log-shipper-test")
os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")

from alb_log_shipper.batching import WireEvent  # noqa: E402

SAMPLE_TIMESTAMP = "2024-03-21T16:10:26.071854Z"

SAMPLE_LINE = (
    "https 2024-03-21T16:10:26.071854Z app/example-prod-lb/xxxxxxx4 "
    "192.0.2.104:36217 10.0.0.24:3003 0.004 0.024 0.003 203 203 1694 10783 "
    '"PUT https://example.com:443/api/modify?user_ids=xxxxx4-xxxx-xxxx-xxxx-xxxxxxxxxxxx&ref_date= HTTP/1.1" '
    '"axios/1.6.5" ECDHE-RSA-AES256-GCM-SHA384 TLSv1.3 '
    "arn:aws:elasticloadbalancing:xx-west-1:987654321098:targetgroup/example-prod-tg/xxxxxxxx4 "
    '"Root=1-xxxxxx4-xxxxxxxxxxxxxxxxxxxxxxxx" "example.com" '
    '"arn:aws:acm:xx-west-1:987654321098:certificate/aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa" '
    '203 2024-03-21T16:10:26.061854Z "cache" "-" "-" "10.0.0.24:3003" "203" "-" "-" '
    '"TID_a1b2c3d4e5f67890abcdef1234567890"'
)


class RecordingSink:
    """In-memory LogSink that keeps every batch it was given."""

    def __init__(self, fail: bool = False):
        self.batches: list[list[WireEvent]] = []
        self.fail = fail
        self._lock = threading.Lock()

    def put_log_events(self, events: Sequence[WireEvent]) -> None:
        if self.fail:
            raise RuntimeError("sink unavailable")
        with self._lock:
            self.batches.append(list(events))

    @property
    def events(self) -> list[WireEvent]:
        return [event for batch in self.batches for event in batch]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)


@pytest.fixture
def sample_line() -> str:
    return SAMPLE_LINE


@pytest.fixture
def make_line() -> Callable[..., str]:
    """Builds a valid access-log line with its `time` column replaced."""

    def _make(timestamp: str = SAMPLE_TIMESTAMP) -> str:
        return SAMPLE_LINE.replace(SAMPLE_TIMESTAMP, timestamp, 1)

    return _make


@pytest.fixture
def gzipped() -> Callable[[Sequence[str]], bytes]:
    """Joins lines with newlines and gzip-compresses them."""

    def _gzip(lines: Sequence[str]) -> bytes:
        return gzip.compress(("\n".join(lines) + "\n").encode("utf-8"))

    return _gzip


@pytest.fixture
def lambda_context() -> MagicMock:
    """A *very* small stand-in for the LambdaContext object."""
    context = MagicMock()
    context.function_name = "alb-log-shipper"
    context.function_version = "$LATEST"
    context.memory_limit_in_mb = 128
    context.invoked_function_arn = (
        "arn:aws:lambda:eu-west-1:000000000000:function:alb-log-shipper"
    )
    context.aws_request_id = "req-" + uuid.uuid4().hex
    context.get_remaining_time_in_millis.return_value = 30000
    return context


@pytest.fixture
def s3_notification() -> dict:
    """An S3 ObjectCreated notification for two access-log objects."""
    return {
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "eventName": "ObjectCreated:Put",
                "s3": {
                    "bucket": {"name": "my-bucket"},
                    "object": {"key": "my-folder/my-object1.log.gz", "size": 123},
                },
            },
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "eventName": "ObjectCreated:Put",
                "s3": {
                    "bucket": {"name": "my-bucket"},
                    "object": {"key": "my-folder/my-object2.log.gz", "size": 456},
                },
            },
        ]
    }
