from pydantic import BaseModel, Field
from typing import Optional, List


class UploadRequest(BaseModel):
    project_id: str = Field(min_length=1)
    bucket_name: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: int = Field(gt=0)
    mime_type: str = "application/octet-stream"
    folder_prefix: Optional[str] = None
    linked_model: Optional[str] = None
    linked_model_id: Optional[str] = None


class FileRecord(BaseModel):
    id: str
    project_id: str
    bucket_name: str
    object_key: str
    cloudfront_url: str = ""
    size: int
    mime_type: str
    linked_model: str = ""
    linked_model_id: str = ""
    created_at: str
    updated_at: Optional[str] = None

    class Config:
        from_attributes = True


class UploadResponse(BaseModel):
    upload_url: str
    object_key: str
    cloudfront_url: str
    file: FileRecord


class MoveFileRequest(BaseModel):
    destination_key: str = Field(min_length=1)


class ObjectEntry(BaseModel):
    key: str
    size: int
    last_modified: str
    etag: Optional[str] = None
    storage_class: Optional[str] = None
    uploaded_from_system: bool = False
    metadata: Optional[FileRecord] = None
    cdn_url: Optional[str] = None


class ObjectListing(BaseModel):
    bucket_name: str
    files: List[ObjectEntry]
    total_size: int
    total_files: int
    system_uploaded: int
