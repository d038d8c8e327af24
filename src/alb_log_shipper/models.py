# src/alb_log_shipper/models.py

"""Plain value objects passed between the pipeline stages."""

from dataclasses import dataclass
from datetime import datetime

from .exceptions import InvalidS3URLError

S3_URL_SCHEME = "s3://"


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """Identifies one access-log object in S3."""

    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class LogEntry:
    """
    One projected access-log line.

    `fields` only carries the selected column names; `timestamp` is always
    taken from the `time` column, whether or not it was selected.
    """

    fields: dict[str, str]
    timestamp: datetime


def parse_s3_url(url: str) -> tuple[str, str]:
    """Splits `s3://bucket/prefix` into its bucket and (possibly empty) prefix."""
    if not url.startswith(S3_URL_SCHEME):
        raise InvalidS3URLError(url, "missing 's3://' prefix")
    remainder = url[len(S3_URL_SCHEME) :]
    bucket, sep, prefix = remainder.partition("/")
    if not sep:
        raise InvalidS3URLError(url, "no '/' found after bucket name")
    return bucket, prefix
