from storage_console.database.record_store import PROJECTS, RecordStore
from storage_console.modules.projects.schemas import ProjectCreate, ProjectUpdate, ProjectResponse
from typing import List
from fastapi import HTTPException
from datetime import datetime, timezone
import logging
import uuid

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, store: RecordStore):
        self.store = store

    def create_project(self, project_data: ProjectCreate) -> ProjectResponse:
        now = datetime.now(timezone.utc).isoformat()
        record = {
            "id": str(uuid.uuid4()),
            **project_data.model_dump(),
            "created_at": now,
            "updated_at": now,
        }
        self.store.append(PROJECTS, record)
        logger.info(f"Created project {record['id']} ({record['name']})")
        return ProjectResponse(**record)

    def list_projects(self) -> List[ProjectResponse]:
        return [ProjectResponse(**p) for p in self.store.list_all(PROJECTS)]

    def get_project_by_id(self, project_id: str) -> ProjectResponse:
        record = self.store.find_by_id(PROJECTS, project_id)
        if not record:
            raise HTTPException(status_code=404, detail="Project not found")
        return ProjectResponse(**record)

    def update_project(self, project_id: str, project_data: ProjectUpdate) -> ProjectResponse:
        update_data = project_data.model_dump(exclude_unset=True, exclude_none=True)
        if not update_data:
            raise HTTPException(status_code=400, detail="No fields to update")
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        updated = self.store.update_by_id(PROJECTS, project_id, update_data)
        if not updated:
            raise HTTPException(status_code=404, detail="Project not found")
        return ProjectResponse(**updated)

    def delete_project(self, project_id: str) -> None:
        if not self.store.delete_by_id(PROJECTS, project_id):
            raise HTTPException(status_code=404, detail="Project not found")
        logger.info(f"Deleted project {project_id}")
