from pydantic import BaseModel, field_validator
from typing import Optional, Dict, Any, Literal


EventType = Literal[
    "check", "status", "command", "stdout", "stderr", "result",
    "outputs", "error-intelligence", "session", "exit", "error",
]
EventLevel = Literal["info", "warn", "error", "success", "command"]


class DeploymentEvent(BaseModel):
    type: EventType
    level: Optional[EventLevel] = None
    message: Optional[str] = None
    label: Optional[str] = None
    status: Optional[Literal["success", "error"]] = None
    suggestion: Optional[str] = None
    title: Optional[str] = None
    command: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None
    exit_code: Optional[int] = None


class DeployRequest(BaseModel):
    action: Literal["synth", "synthesize", "deploy"]
    bucket_id: Optional[str] = None
    s3_bucket_name: Optional[str] = None
    region: Optional[str] = None

    @field_validator("action")
    @classmethod
    def normalize_action(cls, value: str) -> str:
        return "synth" if value == "synthesize" else value


class ErrorHint(BaseModel):
    title: str
    suggestion: str
    command: Optional[str] = None
