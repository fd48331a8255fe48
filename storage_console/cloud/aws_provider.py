"""boto3 wrappers for the S3, CloudFront and CloudFormation calls the app makes.

Public methods are coroutines; the blocking boto3 work runs in a worker thread.
Delete operations treat an already-missing target as success so teardown can be
re-run against a partially deleted resource.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from storage_console.config import settings

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {"NoSuchBucket", "404", "NotFound"}
_MISSING_DISTRIBUTION_CODES = {"NoSuchDistribution"}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _iso(value: Any) -> str:
    return value.isoformat() if value is not None else ""


class AwsProvider:
    def __init__(self, region: Optional[str] = None):
        self.default_region = region or settings.aws_region
        self._credentials = {}
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            self._credentials = {
                "aws_access_key_id": settings.aws_access_key_id,
                "aws_secret_access_key": settings.aws_secret_access_key,
            }

    def _client(self, service: str, region: Optional[str] = None):
        return boto3.client(service, region_name=region or self.default_region, **self._credentials)

    def stack_name(self, s3_bucket_name: str) -> str:
        return f"{settings.stack_name_prefix}{s3_bucket_name}"

    # ── CloudFormation ─────────────────────────────────────────────────────

    async def describe_stack(self, s3_bucket_name: str, region: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Stack status, outputs and resources for a bucket, or None when no stack exists."""
        return await asyncio.to_thread(self._describe_stack, s3_bucket_name, region)

    def _describe_stack(self, s3_bucket_name: str, region: Optional[str]) -> Optional[Dict[str, Any]]:
        client = self._client("cloudformation", region)
        stack_name = self.stack_name(s3_bucket_name)
        try:
            response = client.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if "does not exist" in str(e):
                return None
            raise
        stacks = response.get("Stacks") or []
        if not stacks:
            return None
        stack = stacks[0]

        outputs = {
            o["OutputKey"]: o["OutputValue"]
            for o in stack.get("Outputs", [])
            if o.get("OutputKey") and o.get("OutputValue")
        }
        resources_response = client.describe_stack_resources(StackName=stack_name)
        resources = [
            {
                "logical_id": r.get("LogicalResourceId", ""),
                "physical_id": r.get("PhysicalResourceId", ""),
                "type": r.get("ResourceType", ""),
                "status": r.get("ResourceStatus", ""),
                "status_reason": r.get("ResourceStatusReason"),
                "last_updated": _iso(r.get("Timestamp")),
            }
            for r in resources_response.get("StackResources", [])
        ]
        return {
            "stack_name": stack_name,
            "stack_status": stack.get("StackStatus", "UNKNOWN"),
            "stack_status_reason": stack.get("StackStatusReason"),
            "creation_time": _iso(stack.get("CreationTime")),
            "last_updated_time": _iso(stack.get("LastUpdatedTime")) or None,
            "outputs": outputs,
            "resources": resources,
        }

    async def delete_stack(self, s3_bucket_name: str, region: Optional[str] = None) -> None:
        await asyncio.to_thread(
            lambda: self._client("cloudformation", region).delete_stack(StackName=self.stack_name(s3_bucket_name))
        )
        logger.info(f"Requested deletion of stack {self.stack_name(s3_bucket_name)}")

    # ── S3 ─────────────────────────────────────────────────────────────────

    async def object_store_exists(self, bucket_name: str, region: Optional[str] = None) -> bool:
        return await asyncio.to_thread(self._bucket_exists, bucket_name, region)

    def _bucket_exists(self, bucket_name: str, region: Optional[str]) -> bool:
        try:
            self._client("s3", region).head_bucket(Bucket=bucket_name)
            return True
        except ClientError:
            return False

    async def empty_object_store(self, bucket_name: str, region: Optional[str] = None) -> int:
        """Delete every object in the bucket; returns how many were removed."""
        return await asyncio.to_thread(self._empty_bucket, bucket_name, region)

    def _empty_bucket(self, bucket_name: str, region: Optional[str]) -> int:
        client = self._client("s3", region)
        total_deleted = 0
        try:
            paginator = client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket_name):
                objects = page.get("Contents") or []
                if not objects:
                    continue
                client.delete_objects(
                    Bucket=bucket_name,
                    Delete={"Objects": [{"Key": o["Key"]} for o in objects], "Quiet": True},
                )
                total_deleted += len(objects)
        except ClientError as e:
            if _error_code(e) in _MISSING_BUCKET_CODES:
                logger.info(f"Bucket {bucket_name} already gone, nothing to empty")
                return total_deleted
            raise
        logger.info(f"Deleted {total_deleted} object(s) from {bucket_name}")
        return total_deleted

    async def delete_object_store(self, bucket_name: str, region: Optional[str] = None) -> None:
        await asyncio.to_thread(self._delete_bucket, bucket_name, region)

    def _delete_bucket(self, bucket_name: str, region: Optional[str]) -> None:
        try:
            self._client("s3", region).delete_bucket(Bucket=bucket_name)
            logger.info(f"Deleted bucket {bucket_name}")
        except ClientError as e:
            if _error_code(e) in _MISSING_BUCKET_CODES:
                logger.info(f"Bucket {bucket_name} already deleted")
                return
            raise

    async def list_objects(self, bucket_name: str, region: Optional[str] = None, prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._list_objects, bucket_name, region, prefix)

    def _list_objects(self, bucket_name: str, region: Optional[str], prefix: Optional[str]) -> List[Dict[str, Any]]:
        paginator = self._client("s3", region).get_paginator("list_objects_v2")
        kwargs = {"Bucket": bucket_name}
        if prefix:
            kwargs["Prefix"] = prefix
        objects = []
        for page in paginator.paginate(**kwargs):
            for obj in page.get("Contents") or []:
                if not obj.get("Key"):
                    continue
                objects.append({
                    "key": obj["Key"],
                    "size": obj.get("Size", 0),
                    "last_modified": _iso(obj.get("LastModified")),
                    "etag": obj.get("ETag"),
                    "storage_class": obj.get("StorageClass"),
                })
        return objects

    async def delete_object(self, bucket_name: str, object_key: str, region: Optional[str] = None) -> None:
        await asyncio.to_thread(
            lambda: self._client("s3", region).delete_object(Bucket=bucket_name, Key=object_key)
        )

    async def move_object(self, bucket_name: str, source_key: str, destination_key: str, region: Optional[str] = None) -> None:
        await asyncio.to_thread(self._move_object, bucket_name, source_key, destination_key, region)

    def _move_object(self, bucket_name: str, source_key: str, destination_key: str, region: Optional[str]) -> None:
        client = self._client("s3", region)
        client.copy_object(
            Bucket=bucket_name,
            CopySource={"Bucket": bucket_name, "Key": source_key},
            Key=destination_key,
        )
        client.delete_object(Bucket=bucket_name, Key=source_key)

    async def generate_upload_url(self, bucket_name: str, object_key: str, content_type: str, region: Optional[str] = None) -> str:
        return await asyncio.to_thread(
            lambda: self._client("s3", region).generate_presigned_url(
                "put_object",
                Params={"Bucket": bucket_name, "Key": object_key, "ContentType": content_type},
                ExpiresIn=settings.presigned_url_expiry_seconds,
            )
        )

    # ── CloudFront ─────────────────────────────────────────────────────────

    def _cloudfront(self):
        # CloudFront is global but its API lives in us-east-1
        return self._client("cloudfront", "us-east-1")

    async def delete_distribution(self, distribution_id: str) -> None:
        """Disable the distribution, wait for it to settle, then delete it."""
        await asyncio.to_thread(self._delete_distribution, distribution_id)

    def _delete_distribution(self, distribution_id: str) -> None:
        client = self._cloudfront()
        try:
            config_response = client.get_distribution_config(Id=distribution_id)
        except ClientError as e:
            if _error_code(e) in _MISSING_DISTRIBUTION_CODES:
                logger.info(f"Distribution {distribution_id} already deleted")
                return
            raise

        config = config_response["DistributionConfig"]
        if config.get("Enabled"):
            config["Enabled"] = False
            client.update_distribution(
                Id=distribution_id,
                DistributionConfig=config,
                IfMatch=config_response["ETag"],
            )

        for _ in range(settings.distribution_poll_attempts):
            status = client.get_distribution(Id=distribution_id)["Distribution"]["Status"]
            if status == "Deployed":
                latest = client.get_distribution_config(Id=distribution_id)
                client.delete_distribution(Id=distribution_id, IfMatch=latest["ETag"])
                logger.info(f"Deleted distribution {distribution_id}")
                return
            time.sleep(settings.distribution_poll_interval_seconds)

        waited = settings.distribution_poll_attempts * settings.distribution_poll_interval_seconds
        raise TimeoutError(
            f"CloudFront distribution {distribution_id} did not reach Deployed state after {waited:.0f} seconds"
        )

    async def list_distributions(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._list_distributions)

    def _list_distributions(self) -> List[Dict[str, Any]]:
        paginator = self._cloudfront().get_paginator("list_distributions")
        distributions = []
        for page in paginator.paginate():
            for dist in (page.get("DistributionList") or {}).get("Items") or []:
                distributions.append({
                    "id": dist.get("Id", ""),
                    "domain_name": dist.get("DomainName", ""),
                    "status": dist.get("Status", "Unknown"),
                    "enabled": dist.get("Enabled", False),
                    "origins": [o["DomainName"] for o in (dist.get("Origins") or {}).get("Items") or [] if o.get("DomainName")],
                    "comment": dist.get("Comment", ""),
                    "last_modified": _iso(dist.get("LastModifiedTime")),
                    "alternative_domains": (dist.get("Aliases") or {}).get("Items") or [],
                    "price_class": dist.get("PriceClass", "PriceClass_All"),
                })
        return distributions
