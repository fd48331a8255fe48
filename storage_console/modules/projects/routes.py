from fastapi import APIRouter, Depends
from typing import List

from storage_console.core.dependencies import get_record_store
from storage_console.database.record_store import RecordStore
from storage_console.modules.buckets.schemas import DeleteResponse
from storage_console.modules.projects.schemas import ProjectCreate, ProjectUpdate, ProjectResponse
from storage_console.modules.projects.service import ProjectService


def get_project_service(store: RecordStore = Depends(get_record_store)) -> ProjectService:
    return ProjectService(store)


router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=List[ProjectResponse])
async def list_projects(service: ProjectService = Depends(get_project_service)):
    return service.list_projects()


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(project_data: ProjectCreate, service: ProjectService = Depends(get_project_service)):
    return service.create_project(project_data)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: str, service: ProjectService = Depends(get_project_service)):
    return service.get_project_by_id(project_id)


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    project_data: ProjectUpdate,
    service: ProjectService = Depends(get_project_service),
):
    return service.update_project(project_id, project_data)


@router.delete("/{project_id}", response_model=DeleteResponse)
async def delete_project(project_id: str, service: ProjectService = Depends(get_project_service)):
    """Delete the project record. Its buckets are left in place."""
    service.delete_project(project_id)
    return DeleteResponse(success=True)
