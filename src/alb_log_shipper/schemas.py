# src/alb_log_shipper/schemas.py

from urllib.parse import unquote_plus

from pydantic import BaseModel, Field

from .models import ObjectRef

# --- Runtime Validation (using Pydantic) ---


class S3BucketModel(BaseModel):
    name: str = Field(..., min_length=1)


class S3ObjectModel(BaseModel):
    # As it appears in the notification: URL-encoded, with "+" for spaces.
    key: str = Field(..., min_length=1)

    @property
    def decoded_key(self) -> str:
        return unquote_plus(self.key)


class S3DataModel(BaseModel):
    bucket: S3BucketModel
    object: S3ObjectModel


class S3EventNotificationRecord(BaseModel):
    """
    Pydantic model for runtime parsing and validation of an S3 event record.
    """

    s3: S3DataModel

    def to_object_ref(self) -> ObjectRef:
        return ObjectRef(bucket=self.s3.bucket.name, key=self.s3.object.decoded_key)


class S3EventNotification(BaseModel):
    """An `ObjectCreated` notification carrying one or more records."""

    records: list[S3EventNotificationRecord] = Field(..., alias="Records")

    def to_object_refs(self) -> list[ObjectRef]:
        return [record.to_object_ref() for record in self.records]
