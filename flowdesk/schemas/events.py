from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from flowdesk.schemas.session import FlowSession


class InboundEvent(BaseModel):
    conversation_id: str
    text: str = ""
    attachments: list[str] = Field(default_factory=list)


class SendMessage(BaseModel):
    type: Literal["send_message"] = "send_message"
    conversation_id: str
    text: str
    delay_ms: Optional[int] = None  # scheduling hint for the delivery gateway
    has_media: bool = False
    media_url: Optional[str] = None
    node_id: Optional[str] = None


class TransferConversation(BaseModel):
    type: Literal["transfer_conversation"] = "transfer_conversation"
    conversation_id: str
    operator_id: str
    department: str


class QueueConversation(BaseModel):
    type: Literal["queue_conversation"] = "queue_conversation"
    conversation_id: str
    department: Optional[str] = None
    reason: str = "no_operator_available"


OutboundAction = Annotated[
    Union[SendMessage, TransferConversation, QueueConversation],
    Field(discriminator="type"),
]


class Outcome(str, Enum):
    NO_MATCH = "no_match"
    AWAITING_INPUT = "awaiting_input"
    AWAITING_CHOICE = "awaiting_choice"
    VALIDATION_FAILED = "validation_failed"
    NO_MATCHING_BRANCH = "no_matching_branch"
    TRANSFERRED = "transferred"
    QUEUED = "queued"
    COMPLETED = "completed"
    LIMIT_EXCEEDED = "limit_exceeded"


class ExecutionResult(BaseModel):
    actions: list[OutboundAction] = Field(default_factory=list)
    session_after: Optional[FlowSession] = None
    outcome: Outcome = Outcome.NO_MATCH
    flow_id: Optional[str] = None
