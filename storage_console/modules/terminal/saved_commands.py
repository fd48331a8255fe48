from storage_console.database.record_store import COMMANDS, RecordStore
from storage_console.modules.terminal.schemas import SavedCommandCreate, SavedCommandResponse
from typing import List
from fastapi import HTTPException
from datetime import datetime, timezone
import logging
import uuid

logger = logging.getLogger(__name__)


class SavedCommandService:
    """Operator shortcuts shown beside the terminal. Saving does not run anything."""

    def __init__(self, store: RecordStore):
        self.store = store

    def list_commands(self) -> List[SavedCommandResponse]:
        return [SavedCommandResponse(**c) for c in self.store.list_all(COMMANDS)]

    def save_command(self, command_data: SavedCommandCreate) -> SavedCommandResponse:
        record = {
            "id": f"custom-{uuid.uuid4().hex[:12]}",
            **command_data.model_dump(),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.store.append(COMMANDS, record)
        logger.info(f"Saved command {record['id']} ({record['label']})")
        return SavedCommandResponse(**record)

    def delete_command(self, command_id: str) -> None:
        if not self.store.delete_by_id(COMMANDS, command_id):
            raise HTTPException(status_code=404, detail="Command not found")
        logger.info(f"Deleted saved command {command_id}")
