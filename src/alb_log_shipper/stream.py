# src/alb_log_shipper/stream.py

"""
Decompression bridge between an S3 object body and the record parser.

A producer thread inflates the gzip body chunk by chunk and hands the bytes to
the parser through a `BytePipe`, a small bounded buffer with explicit close
semantics:

* the writer blocks while the buffer is full, so a slow parser throttles the
  download instead of letting it pile up in memory;
* the reader blocks while the buffer is empty;
* a writer-side failure is re-raised on the reader side once the bytes
  written before it have been consumed, so a corrupt object ends parsing with
  an error rather than looking like a short file;
* closing the reader makes every pending and future write fail with
  BrokenPipeError, so the producer never waits on a parser that gave up.
"""

import gzip
import io
import logging
import threading
import zlib
from collections import deque
from typing import BinaryIO

from .exceptions import DecompressionError, StreamError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class BytePipe:
    """Bounded, thread-safe byte conduit with one writer and one reader."""

    def __init__(self, max_chunks: int = 1):
        if max_chunks < 1:
            raise ValueError("max_chunks must be at least 1")
        self._max_chunks = max_chunks
        self._chunks: deque[bytes] = deque()
        self._cond = threading.Condition()
        self._writer_closed = False
        self._writer_error: BaseException | None = None
        self._reader_closed = False

    # --- Writer side ---

    def write(self, data: bytes) -> int:
        if not data:
            return 0
        with self._cond:
            if self._writer_closed:
                raise ValueError("write to a closed pipe")
            self._cond.wait_for(
                lambda: self._reader_closed or len(self._chunks) < self._max_chunks
            )
            if self._reader_closed:
                raise BrokenPipeError("pipe reader has been closed")
            self._chunks.append(bytes(data))
            self._cond.notify_all()
        return len(data)

    def close(self, error: BaseException | None = None) -> None:
        """Ends the writer side; `error` is surfaced to the reader after the buffered bytes."""
        with self._cond:
            if self._writer_closed:
                return
            self._writer_closed = True
            self._writer_error = error
            self._cond.notify_all()

    # --- Reader side ---

    def reader(self) -> "PipeReader":
        return PipeReader(self)

    def _read_chunk(self) -> bytes:
        with self._cond:
            self._cond.wait_for(
                lambda: self._chunks or self._writer_closed or self._reader_closed
            )
            if self._chunks:
                chunk = self._chunks.popleft()
                self._cond.notify_all()
                return chunk
            if self._reader_closed:
                raise ValueError("read from a closed pipe")
            if self._writer_error is not None:
                error = self._writer_error
                if isinstance(error, StreamError):
                    raise error
                raise StreamError(f"pipe writer failed: {error}") from error
            return b""

    def _close_reader(self) -> None:
        with self._cond:
            self._reader_closed = True
            self._chunks.clear()
            self._cond.notify_all()


class PipeReader(io.RawIOBase):
    """Raw, blocking reader over a BytePipe, suitable for io.BufferedReader."""

    def __init__(self, pipe: BytePipe):
        self._pipe = pipe
        self._pending = memoryview(b"")

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if not self._pending:
            chunk = self._pipe._read_chunk()
            if not chunk:
                return 0
            self._pending = memoryview(chunk)
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            self._pipe._close_reader()
        super().close()


def decompress_into(source: BinaryIO, pipe: BytePipe) -> None:
    """
    Inflates `source` into `pipe` until EOF, a gzip error, or the reader going away.

    Both the decompressor and `source` are closed on every exit path.
    """
    try:
        with gzip.GzipFile(fileobj=source, mode="rb") as decompressor:
            for chunk in iter(lambda: decompressor.read(READ_CHUNK_SIZE), b""):
                pipe.write(chunk)
    except BrokenPipeError as e:
        logger.debug("Pipe reader closed before the object was fully inflated.")
        pipe.close(e)
    except (OSError, EOFError, zlib.error) as e:
        logger.warning(
            "Failed to decompress object body.",
            extra={"error_type": type(e).__name__, "error": str(e)},
        )
        pipe.close(DecompressionError(str(e)))
    except Exception as e:
        logger.exception("Unexpected error while decompressing object body.")
        pipe.close(DecompressionError(f"unexpected {type(e).__name__}: {e}"))
    else:
        pipe.close()
    finally:
        source.close()


def start_decompression(
    source: BinaryIO, pipe: BytePipe, name: str = "decompressor"
) -> threading.Thread:
    """Runs `decompress_into` on its own daemon thread and returns the thread."""
    thread = threading.Thread(
        target=decompress_into, args=(source, pipe), name=name, daemon=True
    )
    thread.start()
    return thread
