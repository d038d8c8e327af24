# src/alb_log_shipper/scheduler.py

"""Runs object pipelines concurrently under a fixed concurrency ceiling."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Iterable

from .exceptions import ObjectProcessingError, get_error_context
from .models import ObjectRef

logger = logging.getLogger(__name__)

# Maximum number of objects processed at the same time.
DEFAULT_CONCURRENCY = 10


class FanOutScheduler:
    """
    Processes many objects at once, never more than `concurrency` at a time.

    A permit is taken before each object is submitted, so the submitting
    thread waits once the ceiling is reached. `run` always waits for every
    submitted object; the first failure to complete is re-raised afterwards
    and any later ones are logged.
    """

    def __init__(
        self,
        process: Callable[[ObjectRef], object],
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._process = process
        self._concurrency = concurrency

    def run(self, objects: Iterable[ObjectRef]) -> None:
        permits = threading.BoundedSemaphore(self._concurrency)
        futures: dict[Future, ObjectRef] = {}

        with ThreadPoolExecutor(
            max_workers=self._concurrency, thread_name_prefix="object"
        ) as executor:
            for ref in objects:
                permits.acquire()
                future = executor.submit(self._process, ref)
                future.add_done_callback(lambda _: permits.release())
                futures[future] = ref

            first_failure: tuple[ObjectRef, BaseException] | None = None
            for future in as_completed(futures):
                error = future.exception()
                if error is None:
                    continue
                ref = futures[future]
                if first_failure is None:
                    first_failure = (ref, error)
                else:
                    logger.error(
                        "Additional object failed",
                        extra={"bucket": ref.bucket, "key": ref.key, **get_error_context(error)},
                    )

        logger.info("Finished processing objects", extra={"object_count": len(futures)})
        if first_failure is not None:
            ref, error = first_failure
            raise ObjectProcessingError(ref.bucket, ref.key, str(error)) from error
