from sqlalchemy import Boolean, Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship

from flowdesk.database import Base
from flowdesk.models.operator import department_members


class Department(Base):
    __tablename__ = "departments"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    distribution_strategy = Column(Text, nullable=False, default="balanced")  # balanced, sequential, random
    max_chats_per_operator = Column(Integer, nullable=False, default=5)
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))

    operators = relationship("Operator", secondary=department_members, back_populates="departments")
