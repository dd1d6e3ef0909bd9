from typing import Optional

from pydantic import BaseModel, Field

from flowdesk.schemas.events import OutboundAction


class MessageRequest(BaseModel):
    conversation_id: str
    content: str = ""
    channel: str = "whatsapp"
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    attachments: list[str] = Field(default_factory=list)


class MessageResponse(BaseModel):
    success: bool
    conversation_id: str
    status: str
    outcome: Optional[str] = None
    actions: list[OutboundAction] = Field(default_factory=list)
    message: Optional[str] = None
