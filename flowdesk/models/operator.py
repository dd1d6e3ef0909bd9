from sqlalchemy import Column, ForeignKey, Integer, Table, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship

from flowdesk.database import Base

department_members = Table(
    "department_members",
    Base.metadata,
    Column("department_id", Text, ForeignKey("departments.id", ondelete="CASCADE"), primary_key=True),
    Column("operator_id", Text, ForeignKey("operators.id", ondelete="CASCADE"), primary_key=True),
)


class Operator(Base):
    __tablename__ = "operators"

    id = Column(Text, primary_key=True)
    name = Column(Text)
    role = Column(Text, nullable=False, default="operator")  # admin, supervisor, operator
    status = Column(Text, nullable=False, default="offline")  # online, offline, busy
    current_chats = Column(Integer, nullable=False, default=0)
    max_chats = Column(Integer)
    created_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))

    departments = relationship("Department", secondary=department_members, back_populates="operators")
