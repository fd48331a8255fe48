from fastapi import APIRouter, Depends

from storage_console.core.dependencies import get_record_store
from storage_console.core.event_stream import ndjson_response
from storage_console.database.record_store import RecordStore
from storage_console.modules.deployments.deployment_runner import DeploymentRunner
from storage_console.modules.deployments.schemas import DeploymentEvent, DeployRequest


def get_deployment_runner(store: RecordStore = Depends(get_record_store)) -> DeploymentRunner:
    return DeploymentRunner(store)


router = APIRouter(prefix="/infrastructure", tags=["infrastructure"])


def _stream_error(e: Exception) -> DeploymentEvent:
    return DeploymentEvent(type="result", status="error", level="error", message=str(e))


@router.post("/deploy")
async def deploy(
    payload: DeployRequest,
    runner: DeploymentRunner = Depends(get_deployment_runner),
):
    """
    Run CDK synth or deploy and stream progress as newline-delimited JSON.
    The ``result`` event carries the verdict; only ``outputs`` (after a tracked
    deploy succeeds) or ``error-intelligence`` (after a failure) may follow it.
    """
    return ndjson_response(runner.run(payload), error_event=_stream_error)
