"""Inbound dispatcher: runs the flow engine for bot-handled conversations.

The interpreter only returns actions. This module owns the side effects
around it: the per-conversation lock, conversation status transitions,
the transaction commit and the delivery of outbound actions.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from flowdesk.config import Settings, settings
from flowdesk.logging_config import conversation_logger
from flowdesk.schemas.events import (
    InboundEvent,
    OutboundAction,
    Outcome,
    QueueConversation,
    SendMessage,
    TransferConversation,
)
from flowdesk.services import state_machine
from flowdesk.services.alert_service import alert_error
from flowdesk.services.conversation_lock import ConversationLockManager
from flowdesk.services.conversation_service import SqlConversationRepository
from flowdesk.services.distribution import OperatorDistributor
from flowdesk.services.flow_graph import FlowCache, FlowNotFound, MalformedFlow
from flowdesk.services.flow_interpreter import FlowInterpreter
from flowdesk.services.repositories import ConversationRepository, DeliveryGateway
from flowdesk.services.session_store import SessionStore
from flowdesk.services.sql_repositories import (
    SqlCursorStore,
    SqlFlowRepository,
    SqlOperatorAvailability,
    SqlSessionRepository,
)
from flowdesk.services.state_machine import ConversationStatus


@dataclass
class BotTurn:
    conversation_id: str
    status: ConversationStatus
    outcome: Optional[Outcome] = None
    actions: list[OutboundAction] = field(default_factory=list)
    message: str = ""


class BotService:
    def __init__(
        self,
        interpreter: FlowInterpreter,
        conversations: ConversationRepository,
        delivery: DeliveryGateway,
        locks: ConversationLockManager,
        commit: Optional[Callable[[], None]] = None,
        config: Optional[Settings] = None,
    ):
        self.interpreter = interpreter
        self.conversations = conversations
        self.delivery = delivery
        self.locks = locks
        self.commit = commit or (lambda: None)
        self.config = config or settings

    def process_inbound(
        self,
        conversation_id: str,
        text: str,
        *,
        channel: str = "whatsapp",
        contact_id: Optional[str] = None,
        contact_name: Optional[str] = None,
        attachments: Optional[list[str]] = None,
    ) -> BotTurn:
        log = conversation_logger("bot_service", conversation_id)

        with self.locks.lock(conversation_id):
            conversation = self.conversations.get_or_create(conversation_id, channel, contact_id, contact_name)
            status = ConversationStatus(conversation.status)

            if status == ConversationStatus.CLOSED:
                status = state_machine.reopen(status)
                self.conversations.set_status(conversation, status)
                log.info("Reopened closed conversation")

            if status != ConversationStatus.BOT:
                self.commit()
                return BotTurn(conversation_id, status, message=f"Bot not active (status: {status.value})")

            event = InboundEvent(conversation_id=conversation_id, text=text or "", attachments=attachments or [])
            outcome = None
            try:
                result = self.interpreter.handle(event)
                outcome = result.outcome
                actions = list(result.actions)
                message = f"Flow {result.flow_id}: {outcome.value}" if result.flow_id else outcome.value
            except FlowNotFound as e:
                log.error(f"Session flow vanished: {e}")
                self.interpreter.sessions.end(conversation_id, "flow_not_found")
                actions = [SendMessage(conversation_id=conversation_id, text=self.config.fallback_message)]
                message = f"Flow not found: {e.flow_id}"
            except MalformedFlow as e:
                log.error(f"Session flow is malformed: {e}", context={"violations": e.violations})
                alert_error("Malformed bot flow", {"flow_id": e.flow_id, "conversation_id": conversation_id})
                self.interpreter.sessions.end(conversation_id, "malformed_flow")
                actions = [SendMessage(conversation_id=conversation_id, text=self.config.fallback_message)]
                message = f"Malformed flow: {e.flow_id}"

            deliveries: list[OutboundAction] = []
            for action in actions:
                if isinstance(action, TransferConversation):
                    status = state_machine.assign_operator(status)
                    self.conversations.set_status(
                        conversation, status, operator_id=action.operator_id, department=action.department
                    )
                    self.interpreter.availability.record_assignment(action.operator_id)
                    deliveries.append(SendMessage(conversation_id=conversation_id, text=self.config.transfer_notice))
                elif isinstance(action, QueueConversation):
                    status = state_machine.queue(status)
                    self.conversations.set_status(conversation, status, department=action.department)
                    deliveries.append(SendMessage(conversation_id=conversation_id, text=self.config.queue_notice))
                deliveries.append(action)

            self.commit()

        for action in deliveries:
            self.delivery.send(conversation_id, action)

        return BotTurn(conversation_id, status, outcome=outcome, actions=actions, message=message)


def build_bot_service(db: Session, state: Any) -> BotService:
    """Wire the SQL-backed service for one request.

    ``state`` is the application state holding the process-wide pieces:
    ``flow_cache``, ``conversation_locks``, ``rng`` and ``delivery``.
    """
    interpreter = FlowInterpreter(
        flows=SqlFlowRepository(db),
        sessions=SessionStore(SqlSessionRepository(db)),
        availability=SqlOperatorAvailability(db),
        distributor=OperatorDistributor(SqlCursorStore(db), getattr(state, "rng", None) or random.Random()),
        cache=getattr(state, "flow_cache", None),
    )
    return BotService(
        interpreter=interpreter,
        conversations=SqlConversationRepository(db),
        delivery=state.delivery,
        locks=state.conversation_locks,
        commit=db.commit,
    )
