"""Ships gzip-compressed ALB access logs from S3 to CloudWatch Logs."""

__version__ = "0.1.0"
