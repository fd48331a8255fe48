from storage_console.cloud.aws_provider import AwsProvider
from storage_console.database.record_store import BUCKETS, FILES, PROJECTS, RecordStore
from storage_console.modules.files.schemas import (
    FileRecord,
    MoveFileRequest,
    ObjectEntry,
    ObjectListing,
    UploadRequest,
    UploadResponse,
)
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
from datetime import datetime, timezone
import logging
import mimetypes
import re
import uuid

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


def sanitize_file_name(file_name: str) -> str:
    return _REPEATED_UNDERSCORES.sub("_", _UNSAFE_CHARS.sub("_", file_name.strip()))


def resolve_mime_type(file_name: str, mime_type: Optional[str]) -> str:
    """Fall back to the extension when the client sent no useful type."""
    if mime_type and mime_type != OCTET_STREAM:
        return mime_type
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or OCTET_STREAM


def cdn_url(domain: Optional[str], object_key: str) -> str:
    return f"https://{domain}/{object_key}" if domain else ""


def _normalize_prefix(prefix: Optional[str]) -> str:
    if not prefix:
        return ""
    return re.sub(r"/{2,}", "/", prefix.strip("/"))


class FileService:
    def __init__(self, store: RecordStore, provider: AwsProvider):
        self.store = store
        self.provider = provider

    def _find_bucket_by_name(self, s3_bucket_name: str) -> Optional[Dict[str, Any]]:
        matches = self.store.filter_by(BUCKETS, "s3_bucket_name", s3_bucket_name)
        return matches[0] if matches else None

    async def request_upload(self, upload: UploadRequest) -> UploadResponse:
        """Validate an upload against project and bucket limits and hand out a presigned PUT URL."""
        file_name = sanitize_file_name(upload.file_name)
        if not file_name or file_name == "_":
            raise HTTPException(status_code=400, detail="Invalid file name")

        mime_type = resolve_mime_type(upload.file_name, upload.mime_type)

        project = self.store.find_by_id(PROJECTS, upload.project_id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")

        allowed = project.get("allowed_mime_types") or []
        if mime_type not in allowed and mime_type != OCTET_STREAM:
            raise HTTPException(
                status_code=400,
                detail=f"MIME type {mime_type} is not allowed for project \"{project['name']}\". Allowed: {', '.join(allowed)}",
            )

        bucket = self._find_bucket_by_name(upload.bucket_name)
        if not bucket or bucket.get("project_id") != upload.project_id:
            raise HTTPException(status_code=404, detail="Bucket not found for this project")

        project_limit = project.get("max_file_size_mb", 100)
        bucket_limit = (bucket.get("config") or {}).get("max_file_size_mb", project_limit)
        effective_limit = min(bucket_limit, project_limit)
        if upload.file_size > effective_limit * 1024 * 1024:
            source = "bucket" if bucket_limit <= project_limit else "project"
            raise HTTPException(
                status_code=400,
                detail=(
                    f"File size ({upload.file_size / (1024 * 1024):.2f} MB) exceeds the "
                    f"{source}-level limit of {effective_limit} MB."
                ),
            )

        prefix = _normalize_prefix(upload.folder_prefix) or upload.project_id
        object_key = f"{prefix}/{uuid.uuid4()}-{file_name}"
        upload_url = await self.provider.generate_upload_url(
            bucket["s3_bucket_name"], object_key, mime_type, bucket.get("region")
        )

        record = {
            "id": str(uuid.uuid4()),
            "project_id": upload.project_id,
            "bucket_name": bucket["s3_bucket_name"],
            "object_key": object_key,
            "cloudfront_url": cdn_url(bucket.get("cloudfront_domain"), object_key),
            "size": upload.file_size,
            "mime_type": mime_type,
            "linked_model": upload.linked_model or "",
            "linked_model_id": upload.linked_model_id or "",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.store.append(FILES, record)
        logger.info(f"Issued upload URL for {object_key} in {bucket['s3_bucket_name']}")
        return UploadResponse(
            upload_url=upload_url,
            object_key=object_key,
            cloudfront_url=record["cloudfront_url"],
            file=FileRecord(**record),
        )

    def list_files(self, project_id: Optional[str] = None, bucket_name: Optional[str] = None) -> List[FileRecord]:
        files = self.store.list_all(FILES)
        if project_id:
            files = [f for f in files if f.get("project_id") == project_id]
        if bucket_name:
            files = [f for f in files if f.get("bucket_name") == bucket_name]
        return [FileRecord(**f) for f in files]

    def _get_file(self, file_id: str) -> Dict[str, Any]:
        record = self.store.find_by_id(FILES, file_id)
        if not record:
            raise HTTPException(status_code=404, detail="File not found")
        return record

    async def delete_file(self, file_id: str) -> None:
        record = self._get_file(file_id)
        bucket = self._find_bucket_by_name(record["bucket_name"])
        if bucket and bucket.get("status") == "active":
            try:
                await self.provider.delete_object(record["bucket_name"], record["object_key"], bucket.get("region"))
            except Exception as e:
                # Metadata is removed regardless; the object can be cleaned up from the listing
                logger.warning(f"S3 delete of {record['object_key']} failed: {e}")

        if not self.store.delete_by_id(FILES, file_id):
            raise HTTPException(status_code=404, detail="File not found")

    async def move_file(self, file_id: str, move: MoveFileRequest) -> FileRecord:
        record = self._get_file(file_id)
        destination_key = move.destination_key.strip("/")
        if not destination_key:
            raise HTTPException(status_code=400, detail="Invalid destination key")
        if destination_key == record["object_key"]:
            return FileRecord(**record)

        bucket = self._find_bucket_by_name(record["bucket_name"])
        if not bucket:
            raise HTTPException(status_code=404, detail="Bucket not found")

        await self.provider.move_object(
            record["bucket_name"], record["object_key"], destination_key, bucket.get("region")
        )
        updated = self.store.update_by_id(FILES, file_id, {
            "object_key": destination_key,
            "cloudfront_url": cdn_url(bucket.get("cloudfront_domain"), destination_key),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })
        logger.info(f"Moved {record['object_key']} -> {destination_key}")
        return FileRecord(**updated)

    async def list_objects(self, bucket_name: str, prefix: Optional[str] = None) -> ObjectListing:
        """Live objects in the bucket, marked with whether they were uploaded through this app."""
        bucket = self._find_bucket_by_name(bucket_name) or {}
        try:
            objects = await self.provider.list_objects(bucket_name, bucket.get("region"), prefix)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        metadata_by_key = {
            f["object_key"]: f for f in self.store.filter_by(FILES, "bucket_name", bucket_name)
        }
        domain = bucket.get("cloudfront_domain")
        entries = []
        for obj in objects:
            meta = metadata_by_key.get(obj["key"])
            entries.append(ObjectEntry(
                **obj,
                uploaded_from_system=meta is not None,
                metadata=FileRecord(**meta) if meta else None,
                cdn_url=cdn_url(domain, obj["key"]) or None,
            ))

        return ObjectListing(
            bucket_name=bucket_name,
            files=entries,
            total_size=sum(e.size for e in entries),
            total_files=len(entries),
            system_uploaded=sum(1 for e in entries if e.uploaded_from_system),
        )
