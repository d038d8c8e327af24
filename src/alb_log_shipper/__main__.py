"""
Command-line entry point: ship every access-log object under an S3 prefix.

    python -m alb_log_shipper s3://my-alb-logs/AWSLogs/123456789012/
"""

import logging
import sys
from argparse import ArgumentParser

from .app import build_handler
from .config import get_config
from .exceptions import LogShipperError

logger = logging.getLogger("alb_log_shipper")


def build_parser() -> ArgumentParser:
    """Build the CLI argument parser."""
    parser = ArgumentParser(
        prog="alb-log-shipper",
        description="Ship gzip-compressed ALB access logs from S3 to CloudWatch Logs.",
    )
    parser.add_argument(
        "s3_url",
        help="Objects to ship, as s3://bucket/prefix",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )

        object_count = build_handler(config).handle_s3_url(args.s3_url)
    except LogShipperError as e:
        print(f"alb-log-shipper: {e}", file=sys.stderr)
        return 1

    logger.info("Shipped %d objects from %s", object_count, args.s3_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
