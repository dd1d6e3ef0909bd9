"""Interfaces the flow engine reads and writes through.

The SQL implementations live in ``sql_repositories``; tests use in-memory
fakes.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from flowdesk.schemas.events import OutboundAction
from flowdesk.schemas.flow import FlowDefinition
from flowdesk.schemas.session import FlowSession
from flowdesk.services.distribution import DistributionStrategy, Operator
from flowdesk.services.state_machine import ConversationStatus


class FlowRepository(Protocol):
    def get_active_flows(self) -> Sequence[FlowDefinition]: ...

    def get_flow(self, flow_id: str) -> FlowDefinition:
        """Raises FlowNotFound when the id does not resolve."""
        ...


class SessionRepository(Protocol):
    def get(self, conversation_id: str) -> Optional[FlowSession]: ...

    def save(self, session: FlowSession) -> None: ...

    def delete(self, conversation_id: str) -> None: ...

    def list_idle(self, before: datetime) -> Sequence[FlowSession]: ...


class OperatorAvailability(Protocol):
    def list_available(self, department_id: str) -> Sequence[Operator]:
        """Online operators of the department below their concurrent-chat limit."""
        ...

    def strategy_for(self, department_id: str) -> DistributionStrategy: ...

    def record_assignment(self, operator_id: str) -> None: ...


class ConversationRepository(Protocol):
    """Conversation rows carry ``id``, ``status``, ``assigned_operator_id`` and ``department``."""

    def get_or_create(
        self, conversation_id: str, channel: str, contact_id: Optional[str], contact_name: Optional[str] = None
    ) -> Any: ...

    def set_status(
        self,
        conversation: Any,
        status: ConversationStatus,
        operator_id: Optional[str] = None,
        department: Optional[str] = None,
    ) -> None: ...

    def save(self, conversation: Any) -> None: ...

    def list_waiting(self, limit: int) -> Sequence[Any]:
        """Conversations in ``waiting`` ordered by how long they have waited, oldest first."""
        ...


class DeliveryGateway(Protocol):
    def send(self, conversation_id: str, action: OutboundAction) -> None:
        """Fire-and-forget; implementations log their own errors."""
        ...
