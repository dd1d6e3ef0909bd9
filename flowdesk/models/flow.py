from sqlalchemy import Boolean, Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.sql import func

from flowdesk.database import Base


class BotFlow(Base):
    __tablename__ = "bot_flows"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=False)
    trigger = Column(JSONB, nullable=False, default=dict)  # {"type": ..., "value": ...}
    nodes = Column(JSONB, nullable=False, default=list)
    edges = Column(JSONB, nullable=False, default=list)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    def to_document(self) -> dict:
        """Row in the editor JSON shape, ready for FlowDefinition parsing."""
        document = {
            "id": self.id,
            "name": self.name,
            "isActive": self.is_active,
            "nodes": self.nodes or [],
            "edges": self.edges or [],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.trigger:
            document["trigger"] = self.trigger
        return document
