from sqlalchemy import Boolean, Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

from flowdesk.database import Base


class FlowSessionRecord(Base):
    __tablename__ = "flow_sessions"

    conversation_id = Column(Text, primary_key=True)
    flow_id = Column(Text, ForeignKey("bot_flows.id", ondelete="CASCADE"), nullable=False)
    current_node_id = Column(Text, nullable=False)
    variables = Column(JSONB, nullable=False, default=dict)
    awaiting_input = Column(Boolean, nullable=False, default=False)
    history = Column(JSONB, nullable=False, default=list)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
