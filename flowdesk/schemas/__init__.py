from flowdesk.schemas.events import ExecutionResult, InboundEvent, OutboundAction, Outcome
from flowdesk.schemas.flow import FlowDefinition
from flowdesk.schemas.message import MessageRequest, MessageResponse
from flowdesk.schemas.session import FlowSession

__all__ = [
    "FlowDefinition",
    "FlowSession",
    "InboundEvent",
    "OutboundAction",
    "Outcome",
    "ExecutionResult",
    "MessageRequest",
    "MessageResponse",
]
