from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from flowdesk.database import Base


class DistributionCursor(Base):
    """Round-robin position of the sequential strategy, one row per department."""

    __tablename__ = "distribution_cursors"

    department_id = Column(Text, primary_key=True)
    position = Column(Integer, nullable=False, default=0)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
