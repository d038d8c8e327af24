# src/alb_log_shipper/parser.py

"""
Turns decompressed access-log bytes into projected `LogEntry` values.

ALB access logs are space separated, with any column that may contain spaces
(the request line, the user agent, ...) wrapped in double quotes. That is
exactly csv with a space delimiter, so the stdlib csv reader does the
tokenizing.
"""

import csv
import io
import logging
import re
import sys
from datetime import datetime
from typing import BinaryIO, Iterator, Sequence

from .exceptions import RecordFormatError, TimestampParseError
from .fields import FIELD_COUNT, TIME_FIELD_INDEX, FieldSelection
from .models import LogEntry

logger = logging.getLogger(__name__)

# Request lines and user agents are unbounded; the csv default is 128 KiB.
csv.field_size_limit(sys.maxsize)

# RFC 3339 date-time: the offset is mandatory and fractional seconds optional.
_RFC3339 = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> datetime:
    """Strictly parses an RFC 3339 timestamp into an aware datetime."""
    match = _RFC3339.match(value)
    if match is None:
        raise TimestampParseError(value, f"'{value}' is not an RFC 3339 timestamp")

    # datetime only carries microseconds, extra precision is truncated.
    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    offset = match["offset"].upper()
    if offset == "Z":
        offset = "+00:00"
    normalized = f"{match['date']}T{match['time']}.{fraction}{offset}"
    try:
        return datetime.fromisoformat(normalized)
    except ValueError as e:
        raise TimestampParseError(value, str(e)) from e


def parse_record(tokens: Sequence[str], selection: FieldSelection) -> LogEntry:
    """Validates one tokenized line and projects it through `selection`."""
    if len(tokens) != FIELD_COUNT:
        raise RecordFormatError(
            f"invalid log format: expected {FIELD_COUNT} fields, got {len(tokens)}",
            context={"expected": FIELD_COUNT, "actual": len(tokens)},
        )

    timestamp = parse_timestamp(tokens[TIME_FIELD_INDEX])
    fields = {
        selection.name_for_index(i): value
        for i, value in enumerate(tokens)
        if selection.include_field(i)
    }
    return LogEntry(fields=fields, timestamp=timestamp)


def parse_stream(stream: BinaryIO, selection: FieldSelection) -> Iterator[LogEntry]:
    """
    Yields one LogEntry per access-log line in `stream`.

    The first malformed line raises and ends the iteration; nothing after it
    is read. Blank lines are skipped.
    """
    # Undecodable bytes become U+FFFD, as in the shipped JSON.
    text = io.TextIOWrapper(stream, encoding="utf-8", errors="replace", newline="")
    reader = csv.reader(text, delimiter=" ", quotechar='"', strict=True)
    while True:
        try:
            tokens = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            raise RecordFormatError(
                f"error reading a record: {e}",
                context={"line_num": reader.line_num},
            ) from e
        if not tokens:
            continue
        yield parse_record(tokens, selection)
