from pydantic import BaseModel
from typing import Optional, List, Literal


RecommendedAction = Literal["update-to-active", "update-to-failed", "update-to-pending", "cleanup", "none"]
ApplyAction = Literal["update-to-active", "update-to-failed", "update-to-pending", "rollback"]


class StackResourceInfo(BaseModel):
    logical_id: str
    physical_id: str = ""
    type: str = ""
    status: str = ""
    status_reason: Optional[str] = None
    last_updated: str = ""


class SyncStatus(BaseModel):
    bucket_id: str
    bucket_name: str
    s3_bucket_name: str
    local_status: str
    stack_exists: bool = False
    stack_status: Optional[str] = None
    stack_status_reason: Optional[str] = None
    s3_bucket_exists: bool = False
    cloudfront_domain: Optional[str] = None
    cloudfront_distribution_id: Optional[str] = None
    resources: List[StackResourceInfo] = []
    needs_sync: bool = False
    recommended_action: RecommendedAction = "none"
    auto_applied: bool = False


class SyncAllResponse(BaseModel):
    results: List[SyncStatus]


class ApplySyncRequest(BaseModel):
    action: str


class ApplySyncResponse(BaseModel):
    success: bool = True
