from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

from flowdesk.database import Base


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Text, primary_key=True)
    channel = Column(Text, nullable=False, default="whatsapp")  # whatsapp, instagram
    contact_id = Column(Text)
    contact_name = Column(Text)
    status = Column(Text, nullable=False, default="bot")  # bot, waiting, human, closed
    department = Column(Text)
    assigned_operator_id = Column(Text)
    tags = Column(JSONB, nullable=False, default=list)
    started_at = Column(TIMESTAMP(timezone=True), nullable=False)
    waiting_since = Column(TIMESTAMP(timezone=True), index=True)  # set while status is waiting
    last_message_at = Column(TIMESTAMP(timezone=True))
    closed_at = Column(TIMESTAMP(timezone=True))
