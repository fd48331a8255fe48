from storage_console.config import settings
from storage_console.database.record_store import BUCKETS, RecordStore
from storage_console.modules.buckets.schemas import BucketCreate, BucketUpdate, BucketResponse
from storage_console.modules.buckets.teardown import remove_bucket_metadata
from typing import List, Optional
from fastapi import HTTPException
from datetime import datetime, timezone
import logging
import time
import uuid

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_s3_bucket_name(name: str) -> str:
    """Globally unique, never reused: the millisecond suffix changes on every create."""
    return f"{settings.bucket_name_prefix}-{name}-{int(time.time() * 1000)}"


class BucketService:
    def __init__(self, store: RecordStore):
        self.store = store

    def create_bucket(self, bucket_data: BucketCreate) -> BucketResponse:
        """Create a bucket record in pending state; provisioning happens on deploy."""
        now = _now()
        record = {
            "id": str(uuid.uuid4()),
            "project_id": bucket_data.project_id,
            "name": bucket_data.name,
            "s3_bucket_name": generate_s3_bucket_name(bucket_data.name),
            "s3_bucket_arn": "",
            "cloudfront_domain": "",
            "cloudfront_distribution_id": "",
            "region": bucket_data.region,
            "status": "pending",
            "config": {
                "versioning": bucket_data.versioning,
                "encryption": bucket_data.encryption,
                "backup_enabled": bucket_data.backup_enabled,
                "max_file_size_mb": bucket_data.max_file_size_mb,
            },
            "created_at": now,
            "updated_at": now,
        }
        try:
            self.store.append(BUCKETS, record)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        logger.info(f"Created bucket {record['id']} ({record['s3_bucket_name']})")
        return BucketResponse(**record)

    def list_buckets(self, project_id: Optional[str] = None) -> List[BucketResponse]:
        if project_id:
            records = self.store.filter_by(BUCKETS, "project_id", project_id)
        else:
            records = self.store.list_all(BUCKETS)
        return [BucketResponse(**r) for r in records]

    def get_bucket_by_id(self, bucket_id: str) -> BucketResponse:
        record = self.store.find_by_id(BUCKETS, bucket_id)
        if not record:
            raise HTTPException(status_code=404, detail="Bucket not found")
        return BucketResponse(**record)

    def update_bucket(self, bucket_id: str, bucket_data: BucketUpdate) -> BucketResponse:
        update_data = bucket_data.model_dump(exclude_unset=True, exclude_none=True)
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        update_data["updated_at"] = _now()

        updated = self.store.update_by_id(BUCKETS, bucket_id, update_data)
        if not updated:
            raise HTTPException(status_code=404, detail="Bucket not found")
        return BucketResponse(**updated)

    def soft_delete_bucket(self, bucket_id: str) -> None:
        """Forget the bucket locally; AWS resources are left untouched."""
        record = self.store.find_by_id(BUCKETS, bucket_id)
        if not record:
            raise HTTPException(status_code=404, detail="Bucket not found")
        removed = remove_bucket_metadata(self.store, bucket_id, record.get("s3_bucket_name"))
        logger.info(f"Soft-deleted bucket {bucket_id} and {removed} file record(s)")
