"""Compare bucket records with what CloudFormation and S3 actually report.

``check_status`` is read-only. ``sync_all`` applies the corrections that are
unambiguous as it walks the records. ``apply_action`` performs one explicit
correction chosen by the operator.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, get_args

from fastapi import HTTPException

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.database.record_store import BUCKETS, RecordStore
from storage_console.modules.sync.schemas import ApplyAction, RecommendedAction, SyncStatus

logger = logging.getLogger(__name__)

APPLY_ACTIONS = set(get_args(ApplyAction))
_CLEARED_OUTPUTS = {"s3_bucket_arn": "", "cloudfront_domain": "", "cloudfront_distribution_id": ""}
COMPLETE_STATUSES = ("CREATE_COMPLETE", "UPDATE_COMPLETE")


class StackClassification(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    IN_PROGRESS = "in-progress"
    ABSENT = "absent"


def classify_stack(stack_status: Optional[str]) -> StackClassification:
    if not stack_status or stack_status == "DELETE_COMPLETE":
        return StackClassification.ABSENT
    if "FAILED" in stack_status or "ROLLBACK" in stack_status:
        return StackClassification.FAILED
    if "IN_PROGRESS" in stack_status:
        return StackClassification.IN_PROGRESS
    if stack_status in COMPLETE_STATUSES:
        return StackClassification.COMPLETE
    # Unknown status: treat as ambiguous, never auto-applied
    return StackClassification.IN_PROGRESS


def decide(
    local_status: str,
    classification: StackClassification,
    store_exists: bool,
) -> Tuple[bool, RecommendedAction, bool]:
    """
    Returns:
        (needs_sync, recommended_action, auto_apply) where auto_apply marks the
        corrections the sweep may apply without an operator.
    """
    if classification == StackClassification.COMPLETE and local_status != "active":
        return True, "update-to-active", True
    if classification == StackClassification.FAILED and local_status != "failed":
        return True, "update-to-failed", True
    if classification == StackClassification.IN_PROGRESS and local_status != "deploying":
        return True, "none", False
    if classification == StackClassification.ABSENT and local_status in ("active", "deploying"):
        if store_exists:
            return True, "update-to-active", False
        return True, "update-to-pending", True
    return False, "none", False


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateReconciler:
    def __init__(self, store: RecordStore, provider: AwsProvider):
        self.store = store
        self.provider = provider

    def _get_bucket(self, bucket_id: str) -> Dict[str, Any]:
        bucket = self.store.find_by_id(BUCKETS, bucket_id)
        if not bucket:
            raise HTTPException(status_code=404, detail="Bucket not found")
        return bucket

    async def _inspect(self, bucket: Dict[str, Any]) -> Tuple[SyncStatus, Optional[Dict[str, Any]], bool]:
        """Query the stack and the store concurrently and build the verdict."""
        name = bucket.get("s3_bucket_name") or ""
        region = bucket.get("region")
        stack, store_exists = await asyncio.gather(
            self.provider.describe_stack(name, region),
            self.provider.object_store_exists(name, region),
        )
        stack_status = stack["stack_status"] if stack else None
        local_status = bucket.get("status", "pending")
        needs_sync, action, auto_apply = decide(local_status, classify_stack(stack_status), store_exists)

        outputs = (stack or {}).get("outputs") or {}
        result = SyncStatus(
            bucket_id=bucket["id"],
            bucket_name=bucket.get("name", ""),
            s3_bucket_name=name,
            local_status=local_status,
            stack_exists=stack is not None,
            stack_status=stack_status,
            stack_status_reason=(stack or {}).get("stack_status_reason"),
            s3_bucket_exists=store_exists,
            cloudfront_domain=outputs.get("CloudFrontDomain"),
            cloudfront_distribution_id=outputs.get("DistributionId"),
            resources=(stack or {}).get("resources") or [],
            needs_sync=needs_sync,
            recommended_action=action,
        )
        return result, stack, auto_apply

    async def check_status(self, bucket_id: str) -> SyncStatus:
        bucket = self._get_bucket(bucket_id)
        result, _, _ = await self._inspect(bucket)
        return result

    async def sync_all(self) -> List[SyncStatus]:
        """Walk every bucket sequentially, applying unambiguous corrections."""
        results = []
        for bucket in self.store.list_all(BUCKETS):
            try:
                result, stack, auto_apply = await self._inspect(bucket)
                if auto_apply:
                    self._apply(bucket, result.recommended_action, stack)
                    result.auto_applied = True
                results.append(result)
            except Exception as e:
                logger.error(f"Sync failed for bucket {bucket.get('id')}: {e}")
                results.append(SyncStatus(
                    bucket_id=bucket.get("id", ""),
                    bucket_name=bucket.get("name", ""),
                    s3_bucket_name=bucket.get("s3_bucket_name") or "",
                    local_status=bucket.get("status", "pending"),
                ))
        return results

    async def apply_action(self, bucket_id: str, action: str) -> None:
        if action not in APPLY_ACTIONS:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid sync action '{action}'. Use one of: {', '.join(sorted(APPLY_ACTIONS))}",
            )
        bucket = self._get_bucket(bucket_id)
        name = bucket.get("s3_bucket_name") or ""
        region = bucket.get("region")

        stack = None
        if action == "update-to-active":
            stack = await self.provider.describe_stack(name, region)
        elif action == "rollback":
            # Remote delete must succeed before the record forgets the stack
            await self.provider.delete_stack(name, region)
        self._apply(bucket, action, stack)

    def _apply(self, bucket: Dict[str, Any], action: str, stack: Optional[Dict[str, Any]]) -> None:
        if action == "update-to-active":
            outputs = (stack or {}).get("outputs") or {}
            updates = {
                "status": "active",
                "s3_bucket_arn": outputs.get("BucketArn") or bucket.get("s3_bucket_arn", ""),
                "cloudfront_domain": outputs.get("CloudFrontDomain") or bucket.get("cloudfront_domain", ""),
                "cloudfront_distribution_id": (
                    outputs.get("DistributionId") or bucket.get("cloudfront_distribution_id", "")
                ),
            }
        elif action == "update-to-failed":
            updates = {"status": "failed"}
        elif action in ("update-to-pending", "rollback"):
            updates = {"status": "pending", **_CLEARED_OUTPUTS}
        else:
            return

        self.store.update_by_id(BUCKETS, bucket["id"], {**updates, "updated_at": _now()})
        logger.info(f"Applied {action} to bucket {bucket['id']} ({bucket.get('status')} -> {updates['status']})")
