"""Ticket reprint request model.

The example approvable domain shipped with the service. The workflow
engine never imports this module; it reaches it only through
``ReprintRequestAdapter``.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, DateTime

from stageflow.db.base import Base


class ReprintStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class ReprintRequest(Base):
    """Request to reprint an already-issued ticket."""
    __tablename__ = "reprint_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(Integer, nullable=False, index=True)
    trace_no = Column(String(100), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    requested_copies = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=ReprintStatus.PENDING.value, index=True)

    requested_by = Column(Integer, nullable=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<ReprintRequest {self.trace_no} [{self.status}]>"
