# src/alb_log_shipper/clients.py

"""
Client wrappers for interacting with AWS services (S3 and CloudWatch Logs).

These classes provide a clean, abstracted interface over raw boto3 clients,
so the pipeline only ever sees ObjectRefs, byte streams and WireEvents, and
botocore failures arrive as this service's own exception types.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO, Sequence, cast

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .batching import WireEvent
from .exceptions import (
    LogSinkError,
    S3AccessDeniedError,
    S3Error,
    S3ObjectNotFoundError,
    S3ThrottlingError,
    S3TimeoutError,
)
from .models import ObjectRef

if TYPE_CHECKING:
    from mypy_boto3_logs.client import CloudWatchLogsClient as LogsClientType
    from mypy_boto3_s3.client import S3Client as S3ClientType

logger = logging.getLogger(__name__)

_THROTTLING_CODES = {"Throttling", "ThrottlingException", "RequestLimitExceeded", "SlowDown"}
_TIMEOUT_CODES = {"RequestTimeout", "RequestTimeoutException"}


def _aws_error_details(error: ClientError) -> dict[str, Any]:
    return {
        "aws_error_code": error.response["Error"]["Code"],
        "aws_error_message": error.response["Error"]["Message"],
    }


class S3Client:
    """
    A wrapper for the S3 operations the shipper needs: streaming one object
    and listing the objects under a prefix.
    """

    def __init__(self, s3_client: "S3ClientType"):
        self._client = s3_client

    def get_object_stream(self, ref: ObjectRef) -> BinaryIO:
        """
        Retrieves an S3 object's body as a file-like streaming object.
        Raises specific S3 exceptions based on the error type.
        """
        try:
            response = self._client.get_object(Bucket=ref.bucket, Key=ref.key)
            return cast(BinaryIO, response["Body"])
        except ClientError as e:
            raise self._map_client_error(e, ref.bucket, ref.key, "get_object") from e
        except ReadTimeoutError as e:
            raise S3TimeoutError(
                "get_object",
                error_code="S3_READ_TIMEOUT",
                context={"bucket": ref.bucket, "key": ref.key, "timeout_error": str(e)},
            ) from e
        except EndpointConnectionError as e:
            raise S3TimeoutError(
                "get_object",
                error_code="S3_CONNECTION_ERROR",
                context={
                    "bucket": ref.bucket,
                    "key": ref.key,
                    "connection_error": str(e),
                },
            ) from e

    def list_objects(self, bucket: str, prefix: str) -> list[ObjectRef]:
        """Lists every object under `prefix`, following continuation tokens."""
        refs: list[ObjectRef] = []
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    refs.append(ObjectRef(bucket=bucket, key=item["Key"]))
        except ClientError as e:
            raise self._map_client_error(e, bucket, prefix, "list_objects_v2") from e
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "list_objects_v2",
                error_code="S3_CONNECTION_ERROR",
                context={"bucket": bucket, "prefix": prefix, "connection_error": str(e)},
            ) from e

        logger.debug(
            "Listed objects", extra={"bucket": bucket, "prefix": prefix, "count": len(refs)}
        )
        return refs

    @staticmethod
    def _map_client_error(
        error: ClientError, bucket: str, key: str, operation: str
    ) -> S3Error:
        # Map boto3 error codes to our specific exception types
        details = _aws_error_details(error)
        error_code = details["aws_error_code"]
        if error_code in ("NoSuchKey", "NoSuchBucket", "404"):
            return S3ObjectNotFoundError(bucket=bucket, key=key, context=details)
        if error_code in ("AccessDenied", "403"):
            return S3AccessDeniedError(bucket=bucket, key=key, context=details)
        if error_code in _THROTTLING_CODES:
            return S3ThrottlingError(
                operation, context={"bucket": bucket, "key": key, **details}
            )
        if error_code in _TIMEOUT_CODES:
            return S3TimeoutError(
                operation, context={"bucket": bucket, "key": key, **details}
            )
        # For other client errors, wrap in a generic S3 error
        return S3Error(
            f"S3 client error: {details['aws_error_message']}",
            error_code="S3_CLIENT_ERROR",
            context={"bucket": bucket, "key": key, "operation": operation, **details},
        )


@dataclass(frozen=True, slots=True)
class LogDestination:
    """The CloudWatch Logs group and stream every batch is written to."""

    log_group_name: str
    log_stream_name: str


class CloudWatchLogsClient:
    """A wrapper for CloudWatch Logs: destination bootstrap and PutLogEvents."""

    def __init__(self, logs_client: "LogsClientType", destination: LogDestination):
        self._client = logs_client
        self._destination = destination

    @property
    def destination(self) -> LogDestination:
        return self._destination

    def ensure_destination(self) -> None:
        """Creates the log group and log stream if they do not exist yet."""
        group = self._destination.log_group_name
        stream = self._destination.log_stream_name
        try:
            if not self._log_group_exists(group):
                logger.info("Creating log group", extra={"log_group": group})
                self._create_ignoring_existing(
                    self._client.create_log_group, logGroupName=group
                )
            if not self._log_stream_exists(group, stream):
                logger.info(
                    "Creating log stream",
                    extra={"log_group": group, "log_stream": stream},
                )
                self._create_ignoring_existing(
                    self._client.create_log_stream,
                    logGroupName=group,
                    logStreamName=stream,
                )
        except ClientError as e:
            raise LogSinkError(
                "ensure_destination",
                e.response["Error"]["Message"],
                context={"log_group": group, "log_stream": stream, **_aws_error_details(e)},
            ) from e
        except BotoCoreError as e:
            # e.g. NoCredentialsError or EndpointConnectionError
            raise LogSinkError(
                "ensure_destination",
                str(e),
                error_code="LOG_SINK_CONNECTION_ERROR",
                context={
                    "log_group": group,
                    "log_stream": stream,
                    "error_type": type(e).__name__,
                },
            ) from e

    def put_log_events(self, events: Sequence[WireEvent]) -> None:
        """Sends one batch. The events must already be in chronological order."""
        try:
            self._client.put_log_events(
                logGroupName=self._destination.log_group_name,
                logStreamName=self._destination.log_stream_name,
                logEvents=[event.to_input_log_event() for event in events],
            )
        except ClientError as e:
            raise LogSinkError(
                "put_log_events",
                e.response["Error"]["Message"],
                context={"event_count": len(events), **_aws_error_details(e)},
            ) from e
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise LogSinkError(
                "put_log_events",
                str(e),
                error_code="LOG_SINK_CONNECTION_ERROR",
                context={"event_count": len(events)},
            ) from e

    def _log_group_exists(self, name: str) -> bool:
        paginator = self._client.get_paginator("describe_log_groups")
        for page in paginator.paginate(logGroupNamePrefix=name):
            if any(g["logGroupName"] == name for g in page.get("logGroups", [])):
                return True
        return False

    def _log_stream_exists(self, group: str, name: str) -> bool:
        paginator = self._client.get_paginator("describe_log_streams")
        for page in paginator.paginate(logGroupName=group, logStreamNamePrefix=name):
            if any(s["logStreamName"] == name for s in page.get("logStreams", [])):
                return True
        return False

    @staticmethod
    def _create_ignoring_existing(create, **kwargs) -> None:
        try:
            create(**kwargs)
        except ClientError as e:
            # Another invocation created it between our describe and create.
            if e.response["Error"]["Code"] != "ResourceAlreadyExistsException":
                raise
