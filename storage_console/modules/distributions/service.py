from storage_console.cloud.aws_provider import AwsProvider
from storage_console.database.record_store import BUCKETS, RecordStore
from storage_console.modules.distributions.schemas import DistributionResponse, LinkedBucket
from typing import List
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class DistributionService:
    def __init__(self, store: RecordStore, provider: AwsProvider):
        self.store = store
        self.provider = provider

    async def list_distributions(self) -> List[DistributionResponse]:
        """All CloudFront distributions in the account, linked to a bucket by domain when known."""
        try:
            distributions = await self.provider.list_distributions()
        except Exception as e:
            logger.error(f"Failed to list distributions: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        bucket_by_domain = {
            b["cloudfront_domain"]: b for b in self.store.list_all(BUCKETS) if b.get("cloudfront_domain")
        }
        results = []
        for dist in distributions:
            bucket = bucket_by_domain.get(dist["domain_name"])
            linked = None
            if bucket:
                linked = LinkedBucket(
                    id=bucket["id"],
                    name=bucket.get("name", ""),
                    s3_bucket_name=bucket.get("s3_bucket_name", ""),
                    status=bucket.get("status", ""),
                )
            results.append(DistributionResponse(**dist, linked_bucket=linked))
        return results

    async def delete_distribution(self, distribution_id: str) -> None:
        try:
            await self.provider.delete_distribution(distribution_id)
        except Exception as e:
            logger.error(f"Failed to delete distribution {distribution_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))
