from flowdesk.services.flow_graph import FlowCache, FlowEngineError, FlowGraph, FlowNotFound, MalformedFlow
from flowdesk.services.flow_interpreter import FlowExecutionLimitExceeded, FlowInterpreter
from flowdesk.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    can_transition,
    transition,
)
