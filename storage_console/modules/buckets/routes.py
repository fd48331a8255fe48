from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.core.dependencies import get_cloud_provider, get_record_store
from storage_console.core.event_stream import ndjson_response
from storage_console.database.record_store import RecordStore
from storage_console.modules.buckets.schemas import (
    BucketCreate,
    BucketResponse,
    BucketUpdate,
    DeleteResponse,
    TeardownEvent,
)
from storage_console.modules.buckets.service import BucketService
from storage_console.modules.buckets.teardown import TeardownPipeline


def get_bucket_service(store: RecordStore = Depends(get_record_store)) -> BucketService:
    return BucketService(store)


def get_teardown_pipeline(
    store: RecordStore = Depends(get_record_store),
    provider: AwsProvider = Depends(get_cloud_provider),
) -> TeardownPipeline:
    return TeardownPipeline(store, provider)


router = APIRouter(prefix="/buckets", tags=["buckets"])


@router.get("", response_model=List[BucketResponse])
async def list_buckets(
    project_id: Optional[str] = None,
    service: BucketService = Depends(get_bucket_service),
):
    return service.list_buckets(project_id)


@router.post("", response_model=BucketResponse, status_code=201)
async def create_bucket(
    bucket_data: BucketCreate,
    service: BucketService = Depends(get_bucket_service),
):
    """Register a bucket in pending state. Deploy it via /infrastructure/deploy."""
    return service.create_bucket(bucket_data)


@router.get("/{bucket_id}", response_model=BucketResponse)
async def get_bucket(bucket_id: str, service: BucketService = Depends(get_bucket_service)):
    return service.get_bucket_by_id(bucket_id)


@router.put("/{bucket_id}", response_model=BucketResponse)
async def update_bucket(
    bucket_id: str,
    bucket_data: BucketUpdate,
    service: BucketService = Depends(get_bucket_service),
):
    return service.update_bucket(bucket_id, bucket_data)


@router.delete("/{bucket_id}")
async def delete_bucket(
    bucket_id: str,
    full: bool = Query(False, description="Also delete files, CloudFront distribution and S3 bucket"),
    service: BucketService = Depends(get_bucket_service),
    pipeline: TeardownPipeline = Depends(get_teardown_pipeline),
):
    """
    Soft delete (default): remove the record and its file metadata only.
    Full delete: stream teardown progress as newline-delimited JSON.
    """
    if not full:
        service.soft_delete_bucket(bucket_id)
        return DeleteResponse(success=True)

    return ndjson_response(
        pipeline.run(bucket_id),
        error_event=lambda e: TeardownEvent(step="complete", status="error", error=str(e)),
    )
