from fastapi import APIRouter, Depends

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.core.dependencies import get_cloud_provider, get_record_store
from storage_console.database.record_store import RecordStore
from storage_console.modules.sync.reconciler import StateReconciler
from storage_console.modules.sync.schemas import ApplySyncRequest, ApplySyncResponse, SyncAllResponse, SyncStatus


def get_reconciler(
    store: RecordStore = Depends(get_record_store),
    provider: AwsProvider = Depends(get_cloud_provider),
) -> StateReconciler:
    return StateReconciler(store, provider)


router = APIRouter(prefix="/infrastructure", tags=["infrastructure"])


@router.get("/status/{bucket_id}", response_model=SyncStatus)
async def check_status(bucket_id: str, reconciler: StateReconciler = Depends(get_reconciler)):
    """Compare one bucket record with its live stack. Changes nothing."""
    return await reconciler.check_status(bucket_id)


@router.get("/sync", response_model=SyncAllResponse)
async def sync_all(reconciler: StateReconciler = Depends(get_reconciler)):
    """Check every bucket and apply the unambiguous corrections."""
    return SyncAllResponse(results=await reconciler.sync_all())


@router.post("/sync/{bucket_id}", response_model=ApplySyncResponse)
async def apply_sync(
    bucket_id: str,
    payload: ApplySyncRequest,
    reconciler: StateReconciler = Depends(get_reconciler),
):
    await reconciler.apply_action(bucket_id, payload.action)
    return ApplySyncResponse(success=True)
