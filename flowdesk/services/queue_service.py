"""Assign waiting conversations once operators free up.

A transfer with nobody available leaves the conversation in ``waiting``.
``process_waiting_queue`` takes the longest-waiting conversations first and
runs each through the department's distribution strategy. A conversation
with no available operator keeps its place in the queue.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from flowdesk.config import Settings, settings
from flowdesk.logging_config import conversation_logger, get_logger
from flowdesk.schemas.events import OutboundAction, SendMessage, TransferConversation
from flowdesk.services import state_machine
from flowdesk.services.conversation_lock import ConversationLockManager
from flowdesk.services.conversation_service import SqlConversationRepository
from flowdesk.services.distribution import OperatorDistributor
from flowdesk.services.repositories import ConversationRepository, DeliveryGateway, OperatorAvailability
from flowdesk.services.sql_repositories import SqlCursorStore, SqlOperatorAvailability
from flowdesk.services.state_machine import ConversationStatus

logger = get_logger("queue_service")


@dataclass
class QueueAssignment:
    conversation_id: str
    operator_id: str
    department: str


@dataclass
class QueueDrainReport:
    assigned: list[QueueAssignment] = field(default_factory=list)
    still_waiting: list[str] = field(default_factory=list)


class QueueService:
    def __init__(
        self,
        conversations: ConversationRepository,
        availability: OperatorAvailability,
        distributor: OperatorDistributor,
        locks: ConversationLockManager,
        delivery: Optional[DeliveryGateway] = None,
        commit: Optional[Callable[[], None]] = None,
        config: Optional[Settings] = None,
    ):
        self.conversations = conversations
        self.availability = availability
        self.distributor = distributor
        self.locks = locks
        self.delivery = delivery
        self.commit = commit or (lambda: None)
        self.config = config or settings

    def process_waiting_queue(self, limit: Optional[int] = None) -> QueueDrainReport:
        report = QueueDrainReport()
        if not self.config.queue_auto_assign:
            logger.info("Queue auto-assign disabled")
            return report

        waiting = self.conversations.list_waiting(limit or self.config.queue_batch_size)
        if not waiting:
            return report

        logger.info(f"Processing {len(waiting)} waiting conversations")
        deliveries: list[tuple[str, OutboundAction]] = []
        for conversation in waiting:
            assignment = self._assign(conversation)
            if assignment is None:
                report.still_waiting.append(conversation.id)
                continue
            report.assigned.append(assignment)
            notice = SendMessage(conversation_id=assignment.conversation_id, text=self.config.transfer_notice)
            transfer = TransferConversation(
                conversation_id=assignment.conversation_id,
                operator_id=assignment.operator_id,
                department=assignment.department,
            )
            deliveries += [(assignment.conversation_id, notice), (assignment.conversation_id, transfer)]

        if self.delivery is not None:
            for conversation_id, action in deliveries:
                self.delivery.send(conversation_id, action)
        return report

    def _assign(self, conversation: Any) -> Optional[QueueAssignment]:
        log = conversation_logger("queue_service", conversation.id)

        with self.locks.lock(conversation.id):
            status = ConversationStatus(conversation.status)
            if status != ConversationStatus.WAITING:
                return None

            department = conversation.department
            if not department:
                log.warning("Waiting conversation has no department, leaving it queued")
                return None

            operators = self.availability.list_available(department)
            strategy = self.availability.strategy_for(department)
            operator_id = self.distributor.pick(department, operators, strategy)
            if operator_id is None:
                return None

            status = state_machine.assign_operator(status)
            self.conversations.set_status(conversation, status, operator_id=operator_id, department=department)
            self.availability.record_assignment(operator_id)
            self.commit()

        log.info(f"Assigned waiting conversation to {operator_id}", context={"department": department})
        return QueueAssignment(conversation_id=conversation.id, operator_id=operator_id, department=department)


def build_queue_service(db: Session, state: Any) -> QueueService:
    return QueueService(
        conversations=SqlConversationRepository(db),
        availability=SqlOperatorAvailability(db),
        distributor=OperatorDistributor(SqlCursorStore(db), getattr(state, "rng", None) or random.Random()),
        locks=state.conversation_locks,
        delivery=getattr(state, "delivery", None),
        commit=db.commit,
    )
