# src/alb_log_shipper/processor.py

"""
Core business logic for shipping one access-log object.

`LogProcessor.process` streams a gzip-compressed ALB access-log object from
S3 into CloudWatch Logs without ever holding the whole object in memory:

    S3 body --(decompressor thread)--> BytePipe --(parser, calling thread)-->
    intake queue --(accumulator thread)--> PutLogEvents batches

Only a failure to fetch the object is raised. Malformed lines and corrupt
gzip data stop the parsing of that object, but everything parsed before the
failure is still flushed.
"""

import io
import logging
import threading
from contextlib import closing

from .batching import (
    BatchAccumulator,
    LogSink,
    ProgressCounter,
    close_intake,
    new_intake_queue,
)
from .clients import S3Client
from .exceptions import ProcessingError, get_error_context
from .fields import FieldSelection
from .models import ObjectRef
from .parser import parse_stream
from .stream import BytePipe, start_decompression

logger = logging.getLogger(__name__)


class LogProcessor:
    """Runs the per-object pipeline: fetch, inflate, parse, batch, ship."""

    def __init__(self, s3_client: S3Client, sink: LogSink, selection: FieldSelection):
        self._s3 = s3_client
        self._sink = sink
        self._selection = selection

    def process(self, ref: ObjectRef) -> int:
        """
        Ships every parsable entry of `ref` and returns how many were delivered.

        Raises the S3 error if the object cannot be fetched.
        """
        logger.info("Processing logs", extra={"bucket": ref.bucket, "key": ref.key})

        body = self._s3.get_object_stream(ref)

        counter = ProgressCounter()
        accumulator = BatchAccumulator(self._sink, counter)
        intake = new_intake_queue()
        pipe = BytePipe()

        with closing(body):
            decompressor = start_decompression(
                body, pipe, name=f"decompress:{ref.key}"
            )
            consumer = threading.Thread(
                target=accumulator.run,
                args=(intake,),
                name=f"accumulate:{ref.key}",
                daemon=True,
            )
            consumer.start()

            try:
                with io.BufferedReader(pipe.reader()) as stream:
                    for entry in parse_stream(stream, self._selection):
                        intake.put(entry)
            except ProcessingError as e:
                logger.error(
                    "Error processing records. Remaining lines are skipped.",
                    extra={"bucket": ref.bucket, "key": ref.key, **get_error_context(e)},
                )
            finally:
                close_intake(intake)
                consumer.join()

            # The decompressor owns the body until it stops reading.
            decompressor.join()

        processed = counter.value
        logger.info(
            "Processed log entries",
            extra={
                "bucket": ref.bucket,
                "key": ref.key,
                "processed_count": processed,
                "dropped_count": accumulator.dropped,
            },
        )
        return processed
