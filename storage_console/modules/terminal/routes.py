from fastapi import APIRouter, Depends, HTTPException
from typing import List

from storage_console.config import settings
from storage_console.core.dependencies import get_process_registry, get_record_store
from storage_console.core.event_stream import ndjson_response
from storage_console.core.process_registry import ProcessRegistry
from storage_console.database.record_store import RecordStore
from storage_console.modules.buckets.schemas import DeleteResponse
from storage_console.modules.deployments.schemas import DeploymentEvent
from storage_console.modules.terminal.command_runner import CommandRunner
from storage_console.modules.terminal.saved_commands import SavedCommandService
from storage_console.modules.terminal.schemas import (
    KillResponse,
    RunCommandRequest,
    SavedCommandCreate,
    SavedCommandResponse,
)


def get_command_runner(registry: ProcessRegistry = Depends(get_process_registry)) -> CommandRunner:
    return CommandRunner(registry)


def get_saved_command_service(store: RecordStore = Depends(get_record_store)) -> SavedCommandService:
    return SavedCommandService(store)


router = APIRouter(prefix="/terminal", tags=["terminal"])


@router.post("/run")
async def run_command(payload: RunCommandRequest, runner: CommandRunner = Depends(get_command_runner)):
    """
    Run a shell command and stream its output as newline-delimited JSON.
    The first event carries the session_id used to kill it.
    """
    events = runner.run(payload.command, payload.cwd)
    return ndjson_response(
        events,
        error_event=lambda e: DeploymentEvent(type="error", message=str(e), level="error"),
    )


@router.post("/{session_id}/kill", response_model=KillResponse)
async def kill_command(session_id: str, registry: ProcessRegistry = Depends(get_process_registry)):
    """Terminate a running command; SIGKILL follows if it ignores SIGTERM."""
    killed = await registry.terminate(session_id, wait_seconds=settings.kill_grace_seconds)
    if not killed:
        raise HTTPException(status_code=404, detail="No running command for this session")
    return KillResponse(session_id=session_id, killed=True)


@router.get("/commands", response_model=List[SavedCommandResponse])
async def list_saved_commands(service: SavedCommandService = Depends(get_saved_command_service)):
    return service.list_commands()


@router.post("/commands", response_model=SavedCommandResponse, status_code=201)
async def save_command(
    command_data: SavedCommandCreate,
    service: SavedCommandService = Depends(get_saved_command_service),
):
    return service.save_command(command_data)


@router.delete("/commands/{command_id}", response_model=DeleteResponse)
async def delete_saved_command(
    command_id: str,
    service: SavedCommandService = Depends(get_saved_command_service),
):
    service.delete_command(command_id)
    return DeleteResponse(success=True)
