from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal

from storage_console.config import settings


BucketStatus = Literal["pending", "deploying", "active", "failed", "deleting"]
Encryption = Literal["s3", "kms", "none"]
DeletionStepName = Literal["files", "cdn", "store", "metadata", "complete"]
DeletionStepStatus = Literal["running", "done", "error"]

BUCKET_NAME_PATTERN = r"^[a-z0-9][a-z0-9-]*[a-z0-9]$"
S3_NAME_MAX_LENGTH = 63
# "-" + 13-digit epoch millis + "-" around the display name
GENERATED_NAME_OVERHEAD = 15


class BucketConfig(BaseModel):
    versioning: bool = False
    encryption: Encryption = "s3"
    backup_enabled: bool = False
    max_file_size_mb: int = Field(default=100, ge=1, le=5000)


class BucketCreate(BaseModel):
    project_id: str = Field(min_length=1)
    name: str = Field(min_length=3, max_length=63, pattern=BUCKET_NAME_PATTERN)
    region: str = Field(min_length=1)
    versioning: bool = False
    encryption: Encryption = "s3"
    backup_enabled: bool = False
    max_file_size_mb: int = Field(default=100, ge=1, le=5000)

    @field_validator("name")
    @classmethod
    def fits_object_store_name(cls, v: str) -> str:
        limit = S3_NAME_MAX_LENGTH - len(settings.bucket_name_prefix) - GENERATED_NAME_OVERHEAD
        if len(v) > limit:
            raise ValueError(f"name must be at most {limit} characters")
        return v


class BucketUpdate(BaseModel):
    """s3_bucket_name and region are not updatable: together they locate the provisioned resources."""
    name: Optional[str] = Field(default=None, min_length=3, max_length=63, pattern=BUCKET_NAME_PATTERN)
    status: Optional[BucketStatus] = None
    s3_bucket_arn: Optional[str] = None
    cloudfront_domain: Optional[str] = None
    cloudfront_distribution_id: Optional[str] = None
    config: Optional[BucketConfig] = None


class BucketResponse(BaseModel):
    id: str
    project_id: str
    name: str
    s3_bucket_name: str
    s3_bucket_arn: str = ""
    cloudfront_domain: str = ""
    cloudfront_distribution_id: str = ""
    region: str
    status: BucketStatus
    config: BucketConfig
    created_at: str
    updated_at: Optional[str] = None

    class Config:
        from_attributes = True


class TeardownEvent(BaseModel):
    step: DeletionStepName
    status: DeletionStepStatus
    error: Optional[str] = None


class DeleteResponse(BaseModel):
    success: bool = True
