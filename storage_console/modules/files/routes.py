from fastapi import APIRouter, Depends
from typing import List, Optional

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.core.dependencies import get_cloud_provider, get_record_store
from storage_console.database.record_store import RecordStore
from storage_console.modules.buckets.schemas import DeleteResponse
from storage_console.modules.files.schemas import (
    FileRecord,
    MoveFileRequest,
    ObjectListing,
    UploadRequest,
    UploadResponse,
)
from storage_console.modules.files.service import FileService


def get_file_service(
    store: RecordStore = Depends(get_record_store),
    provider: AwsProvider = Depends(get_cloud_provider),
) -> FileService:
    return FileService(store, provider)


router = APIRouter(prefix="/files", tags=["files"])


@router.get("", response_model=List[FileRecord])
async def list_files(
    project_id: Optional[str] = None,
    bucket_name: Optional[str] = None,
    service: FileService = Depends(get_file_service),
):
    return service.list_files(project_id, bucket_name)


@router.post("", response_model=UploadResponse, status_code=201)
async def request_upload(upload: UploadRequest, service: FileService = Depends(get_file_service)):
    """Validate the upload and return a presigned PUT URL plus the stored metadata."""
    return await service.request_upload(upload)


@router.get("/objects/{bucket_name}", response_model=ObjectListing)
async def list_objects(
    bucket_name: str,
    prefix: Optional[str] = None,
    service: FileService = Depends(get_file_service),
):
    return await service.list_objects(bucket_name, prefix)


@router.patch("/{file_id}/move", response_model=FileRecord)
async def move_file(file_id: str, move: MoveFileRequest, service: FileService = Depends(get_file_service)):
    return await service.move_file(file_id, move)


@router.delete("/{file_id}", response_model=DeleteResponse)
async def delete_file(file_id: str, service: FileService = Depends(get_file_service)):
    await service.delete_file(file_id)
    return DeleteResponse(success=True)
