"""
The Lambda Adapter & Orchestrator for the ALB Log Shipper service.

This module is the main entry point for the AWS Lambda function. It is
responsible for:
1.  Initializing AWS Lambda Powertools (Logger, Tracer and Metrics).
2.  Parsing and validating incoming S3 `ObjectCreated` notifications.
3.  Building the shipping pipeline once per execution environment: boto3
    clients, the resolved field selection and the CloudWatch Logs
    destination bootstrap.
4.  Fanning the notified objects out to the per-object pipeline.

Only configuration errors and objects that cannot be fetched fail the
invocation. Malformed log lines and rejected batches are logged and dropped.
"""

from functools import lru_cache
from typing import Any

import boto3
import pydantic
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from .clients import CloudWatchLogsClient, LogDestination, S3Client
from .config import AppConfig, get_config
from .exceptions import InvalidS3EventError, LogShipperError, get_error_context
from .fields import FieldSelection
from .models import parse_s3_url
from .processor import LogProcessor
from .scheduler import FanOutScheduler
from .schemas import S3EventNotification

# --- Global & Reusable Components ---
logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace="ALBLogShipper")


class LogShipperHandler:
    """Turns an S3 notification or an s3:// URL into a fan-out run."""

    def __init__(self, scheduler: FanOutScheduler, s3_client: S3Client):
        self._scheduler = scheduler
        self._s3 = s3_client

    def handle_event(self, event: dict[str, Any]) -> int:
        """Ships every object named in the notification and returns how many there were."""
        try:
            notification = S3EventNotification.model_validate(event)
        except pydantic.ValidationError as e:
            raise InvalidS3EventError(
                "Event is not a valid S3 notification",
                context={"validation_errors": e.errors(include_url=False)},
            ) from e

        refs = notification.to_object_refs()
        logger.info(
            "Starting S3 notification processing",
            extra={"object_count": len(refs), "s3_keys": [ref.uri for ref in refs]},
        )
        self._scheduler.run(refs)
        return len(refs)

    def handle_s3_url(self, url: str) -> int:
        """Ships every object under `s3://bucket/prefix` and returns how many there were."""
        bucket, prefix = parse_s3_url(url)
        refs = self._s3.list_objects(bucket, prefix)
        logger.info(
            "Starting prefix processing",
            extra={"bucket": bucket, "prefix": prefix, "object_count": len(refs)},
        )
        self._scheduler.run(refs)
        return len(refs)


def build_handler(config: AppConfig) -> LogShipperHandler:
    """
    Wires the pipeline from configuration.

    Fails with InvalidFieldSelectionError before touching AWS when FIELDS
    names an unknown column.
    """
    selection = FieldSelection.resolve(config.fields)

    s3_client = S3Client(s3_client=boto3.client("s3"))
    logs_client = CloudWatchLogsClient(
        logs_client=boto3.client("logs"),
        destination=LogDestination(config.log_group_name, config.log_stream_name),
    )
    logs_client.ensure_destination()

    processor = LogProcessor(s3_client, logs_client, selection)
    return LogShipperHandler(FanOutScheduler(processor.process), s3_client)


@lru_cache(maxsize=1)
def get_handler() -> LogShipperHandler:
    """Builds the handler on first use and reuses it across warm invocations."""
    config = get_config()
    logger.setLevel(config.log_level)
    logger.append_keys(service=config.service_name)
    tracer.service = config.service_name
    metrics.service = config.service_name
    return build_handler(config)


@logger.inject_lambda_context()
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def handler(event: dict, context: LambdaContext) -> dict[str, Any]:
    """Main Lambda handler for S3 `ObjectCreated` notifications."""
    try:
        object_count = get_handler().handle_event(event)
    except LogShipperError as e:
        metrics.add_metric(name="FailedInvocations", unit=MetricUnit.Count, value=1)
        logger.error(f"Invocation failed: {e}", extra=get_error_context(e))
        raise

    metrics.add_metric(name="ObjectsReceived", unit=MetricUnit.Count, value=object_count)
    return {"processed_objects": object_count}
