from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from flowdesk.models import Conversation
from flowdesk.services.state_machine import ConversationStatus


def get_or_create_conversation(
    db: Session,
    conversation_id: str,
    channel: str = "whatsapp",
    contact_id: Optional[str] = None,
    contact_name: Optional[str] = None,
) -> Conversation:
    """Find the conversation by id or open a new bot-handled one."""
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()

    if not conversation:
        conversation = Conversation(
            id=conversation_id,
            channel=channel,
            contact_id=contact_id,
            contact_name=contact_name,
            status=ConversationStatus.BOT.value,
            started_at=datetime.now(timezone.utc),
        )
        db.add(conversation)
        db.flush()
    elif contact_name and not conversation.contact_name:
        conversation.contact_name = contact_name

    return conversation


def update_conversation_status(
    db: Session,
    conversation: Conversation,
    new_status: ConversationStatus,
    *,
    operator_id: Optional[str] = None,
    department: Optional[str] = None,
):
    """Persist a status change already approved by the state machine."""
    now = datetime.now(timezone.utc)
    conversation.status = new_status.value
    conversation.last_message_at = now
    if new_status == ConversationStatus.HUMAN:
        conversation.assigned_operator_id = operator_id
    elif new_status in (ConversationStatus.BOT, ConversationStatus.CLOSED):
        conversation.assigned_operator_id = None
    if department is not None:
        conversation.department = department
    conversation.closed_at = now if new_status == ConversationStatus.CLOSED else None
    if new_status == ConversationStatus.WAITING:
        conversation.waiting_since = conversation.waiting_since or now
    else:
        conversation.waiting_since = None
    db.flush()


class SqlConversationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create(
        self, conversation_id: str, channel: str, contact_id: Optional[str], contact_name: Optional[str] = None
    ) -> Conversation:
        return get_or_create_conversation(self.db, conversation_id, channel, contact_id, contact_name)

    def set_status(
        self,
        conversation: Conversation,
        status: ConversationStatus,
        operator_id: Optional[str] = None,
        department: Optional[str] = None,
    ) -> None:
        update_conversation_status(self.db, conversation, status, operator_id=operator_id, department=department)

    def list_waiting(self, limit: int) -> list[Conversation]:
        """Waiting conversations, longest-waiting first."""
        return (
            self.db.query(Conversation)
            .filter(Conversation.status == ConversationStatus.WAITING.value)
            .order_by(Conversation.waiting_since.asc().nulls_last(), Conversation.id.asc())
            .limit(limit)
            .all()
        )

    def save(self, conversation: Conversation) -> None:
        self.db.flush()
