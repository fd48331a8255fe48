from pydantic import BaseModel, Field
from typing import Optional


class RunCommandRequest(BaseModel):
    command: str = Field(min_length=1)
    cwd: Optional[str] = None


class KillResponse(BaseModel):
    session_id: str
    killed: bool


class SavedCommandCreate(BaseModel):
    label: str = Field(min_length=1, max_length=100)
    command: str = Field(min_length=1)
    description: str = ""
    category: str = "Custom"


class SavedCommandResponse(BaseModel):
    id: str
    label: str
    command: str
    description: str = ""
    category: str = "Custom"
    created_at: str
