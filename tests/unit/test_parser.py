# tests/unit/test_parser.py

import csv
import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from alb_log_shipper.exceptions import RecordFormatError, TimestampParseError
from alb_log_shipper.fields import FIELD_COUNT, FieldSelection
from alb_log_shipper.parser import parse_record, parse_stream, parse_timestamp

REQUEST = (
    "PUT https://example.com:443/api/modify?"
    "user_ids=xxxxx4-xxxx-xxxx-xxxx-xxxxxxxxxxxx&ref_date= HTTP/1.1"
)


def _tokens(line: str) -> list[str]:
    return next(csv.reader([line], delimiter=" ", quotechar='"'))


# --- parse_timestamp ---


def test_parse_timestamp_utc_with_microseconds():
    assert parse_timestamp("2024-03-21T16:10:26.071854Z") == datetime(
        2024, 3, 21, 16, 10, 26, 71854, tzinfo=timezone.utc
    )


def test_parse_timestamp_without_fraction_and_with_offset():
    parsed = parse_timestamp("2024-03-21T18:10:26+02:00")

    assert parsed.utcoffset() == timedelta(hours=2)
    assert parsed.astimezone(timezone.utc) == datetime(
        2024, 3, 21, 16, 10, 26, tzinfo=timezone.utc
    )


def test_parse_timestamp_truncates_nanoseconds():
    assert parse_timestamp("2024-03-21T16:10:26.123456789Z").microsecond == 123456


@pytest.mark.parametrize(
    "value",
    [
        "2024-03-21 16:10:26Z",  # space separator
        "2024-03-21T16:10:26",  # no offset
        "2024-13-21T16:10:26Z",  # month out of range
        "21/Mar/2024:16:10:26 +0000",
        "-",
        "",
    ],
)
def test_parse_timestamp_is_strict(value):
    with pytest.raises(TimestampParseError, match="error parsing timestamp"):
        parse_timestamp(value)


# --- parse_record ---


def test_parse_record_projects_every_column(sample_line):
    entry = parse_record(_tokens(sample_line), FieldSelection.resolve(""))

    assert len(entry.fields) == FIELD_COUNT
    assert entry.fields["request"] == REQUEST
    assert entry.fields["user_agent"] == "axios/1.6.5"
    assert entry.fields["conn_trace_id"] == "TID_a1b2c3d4e5f67890abcdef1234567890"
    assert entry.timestamp == datetime(2024, 3, 21, 16, 10, 26, 71854, tzinfo=timezone.utc)


def test_parse_record_keeps_only_selected_columns(sample_line):
    entry = parse_record(_tokens(sample_line), FieldSelection.resolve("elb,request"))

    assert entry.fields == {"elb": "app/example-prod-lb/xxxxxxx4", "request": REQUEST}
    # The timestamp is always parsed, selected or not.
    assert entry.timestamp.year == 2024


def test_parse_record_is_deterministic(sample_line):
    selection = FieldSelection.resolve("type,time,request")
    tokens = _tokens(sample_line)

    assert parse_record(tokens, selection) == parse_record(tokens, selection)


@pytest.mark.parametrize("count", [0, 1, FIELD_COUNT - 1, FIELD_COUNT + 1])
def test_parse_record_rejects_wrong_token_count(count):
    tokens = ["x"] * count

    with pytest.raises(RecordFormatError) as exc_info:
        parse_record(tokens, FieldSelection.resolve(""))

    assert str(exc_info.value) == (
        f"invalid log format: expected {FIELD_COUNT} fields, got {count}"
    )
    assert exc_info.value.context == {"expected": FIELD_COUNT, "actual": count}


def test_parse_record_rejects_bad_timestamp(sample_line):
    tokens = _tokens(sample_line)
    tokens[1] = "yesterday"

    with pytest.raises(TimestampParseError):
        parse_record(tokens, FieldSelection.resolve(""))


def test_serialized_fields_round_trip(sample_line):
    selection = FieldSelection.resolve("type,time,elb,request")
    entry = parse_record(_tokens(sample_line), selection)

    decoded = json.loads(json.dumps(entry.fields))
    assert set(decoded) == {"type", "time", "elb", "request"}
    assert decoded == entry.fields


# --- parse_stream ---


def test_parse_stream_yields_one_entry_per_line(make_line):
    data = "\n".join(
        [make_line("2024-03-21T16:10:26.000000Z"), "", make_line("2024-03-21T16:10:27.000000Z")]
    )

    entries = list(parse_stream(io.BytesIO(data.encode()), FieldSelection.resolve("request")))

    assert [e.fields for e in entries] == [{"request": REQUEST}, {"request": REQUEST}]
    assert entries[1].timestamp - entries[0].timestamp == timedelta(seconds=1)


def test_parse_stream_handles_crlf(sample_line):
    data = (sample_line + "\r\n" + sample_line + "\r\n").encode()

    assert len(list(parse_stream(io.BytesIO(data), FieldSelection.resolve("")))) == 2


def test_parse_stream_empty_input_is_not_an_error():
    assert list(parse_stream(io.BytesIO(b""), FieldSelection.resolve(""))) == []


def test_parse_stream_stops_at_first_bad_line(sample_line):
    data = "\n".join([sample_line, "too few fields", sample_line]).encode()
    entries = []

    with pytest.raises(RecordFormatError, match="expected 30 fields, got 3"):
        for entry in parse_stream(io.BytesIO(data), FieldSelection.resolve("")):
            entries.append(entry)

    assert len(entries) == 1


def test_parse_stream_reports_broken_quoting(sample_line):
    data = (sample_line + "\n" + 'https "unterminated\n').encode()
    entries = []

    with pytest.raises(RecordFormatError, match="error reading a record"):
        for entry in parse_stream(io.BytesIO(data), FieldSelection.resolve("")):
            entries.append(entry)

    assert len(entries) == 1


def test_parse_stream_replaces_invalid_utf8(sample_line):
    good = sample_line.encode("utf-8")
    bad = good.replace(b'"axios/1.6.5"', b'"axios/\xff1.6.5"')
    data = b"\n".join([good] * 5 + [bad]) + b"\n"

    entries = list(parse_stream(io.BytesIO(data), FieldSelection.resolve("")))

    assert len(entries) == 6
    assert all(e.fields["user_agent"] == "axios/1.6.5" for e in entries[:5])
    assert entries[5].fields["user_agent"] == "axios/\ufffd1.6.5"


def test_parse_stream_accepts_fields_longer_than_the_csv_default(sample_line):
    user_agent = "a" * 200_000
    line = sample_line.replace('"axios/1.6.5"', f'"{user_agent}"')

    entries = list(parse_stream(io.BytesIO(line.encode("utf-8")), FieldSelection.resolve("")))

    assert len(entries) == 1
    assert entries[0].fields["user_agent"] == user_agent
