from pydantic import BaseModel, Field
from typing import Optional, List, Literal


PROJECT_NAME_PATTERN = r"^[a-zA-Z0-9-_ ]+$"


class ProjectCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50, pattern=PROJECT_NAME_PATTERN)
    environment: Literal["dev", "prod"]
    max_file_size_mb: int = Field(ge=1, le=500)
    allowed_mime_types: List[str] = Field(min_length=1)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=PROJECT_NAME_PATTERN)
    environment: Optional[Literal["dev", "prod"]] = None
    max_file_size_mb: Optional[int] = Field(default=None, ge=1, le=500)
    allowed_mime_types: Optional[List[str]] = Field(default=None, min_length=1)


class ProjectResponse(BaseModel):
    id: str
    name: str
    environment: str
    max_file_size_mb: int
    allowed_mime_types: List[str]
    created_at: str
    updated_at: Optional[str] = None

    class Config:
        from_attributes = True
