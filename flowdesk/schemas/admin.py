from typing import Any, Optional

from pydantic import BaseModel, Field


class FlowValidationResponse(BaseModel):
    valid: bool
    flow_id: Optional[str] = None
    violations: list[str] = Field(default_factory=list)


class FlowSaveResponse(BaseModel):
    success: bool
    flow: dict[str, Any]


class FlowTemplateResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    flow: dict[str, Any]


class SessionEndResponse(BaseModel):
    success: bool
    conversation_id: str
    ended: bool


class CloseInactiveResponse(BaseModel):
    success: bool
    closed: list[str] = Field(default_factory=list)
    timeout_minutes: int


class QueueAssignmentItem(BaseModel):
    conversation_id: str
    operator_id: str
    department: str


class QueueProcessResponse(BaseModel):
    success: bool
    assigned: list[QueueAssignmentItem] = Field(default_factory=list)
    still_waiting: list[str] = Field(default_factory=list)
