from fastapi import APIRouter, Depends
from typing import List

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.core.dependencies import get_cloud_provider, get_record_store
from storage_console.database.record_store import RecordStore
from storage_console.modules.buckets.schemas import DeleteResponse
from storage_console.modules.distributions.schemas import DistributionResponse
from storage_console.modules.distributions.service import DistributionService


def get_distribution_service(
    store: RecordStore = Depends(get_record_store),
    provider: AwsProvider = Depends(get_cloud_provider),
) -> DistributionService:
    return DistributionService(store, provider)


router = APIRouter(prefix="/distributions", tags=["distributions"])


@router.get("", response_model=List[DistributionResponse])
async def list_distributions(service: DistributionService = Depends(get_distribution_service)):
    return await service.list_distributions()


@router.delete("/{distribution_id}", response_model=DeleteResponse)
async def delete_distribution(
    distribution_id: str,
    service: DistributionService = Depends(get_distribution_service),
):
    """Disable then delete the distribution. Blocks until CloudFront finishes disabling it."""
    await service.delete_distribution(distribution_id)
    return DeleteResponse(success=True)
