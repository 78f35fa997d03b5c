"""Approval audit log model.

This table is APPEND-ONLY. The ORM refuses to flush updates or deletes of
existing entries, and the PostgreSQL migration installs triggers that reject
UPDATE and DELETE statements issued outside the ORM.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, event,
)
from sqlalchemy.orm import relationship

from stageflow.db.base import Base


class AuditEvent(str, Enum):
    """Kinds of audit entries."""
    INSTANCE_CREATED = "INSTANCE_CREATED"
    VOTE_CAST = "VOTE_CAST"
    STAGE_ADVANCED = "STAGE_ADVANCED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ImmutableAuditError(Exception):
    """Raised when code tries to modify or delete an audit entry."""


class AuditEntry(Base):
    """
    Immutable record of one vote or one instance transition.

    ``sequence`` is allocated per instance while the instance row is locked,
    so ordering by it reproduces the causal order of events.
    """
    __tablename__ = "workflow_audit_entries"
    __table_args__ = (
        UniqueConstraint("instance_id", "sequence", name="uq_workflow_audit_entries_instance_sequence"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(
        Integer, ForeignKey("workflow_instances.id"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    event = Column(String(32), nullable=False, index=True)

    # Stage context (names are copied so history survives definition edits)
    stage_id = Column(Integer, nullable=True)
    stage_name = Column(String(255), nullable=True)
    to_stage_id = Column(Integer, nullable=True)
    to_stage_name = Column(String(255), nullable=True)

    # Actor and vote
    actor_id = Column(Integer, nullable=True, index=True)
    vote_id = Column(Integer, ForeignKey("workflow_votes.id"), nullable=True)
    decision = Column(String(10), nullable=True)
    comments = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    instance = relationship("WorkflowInstance")
    vote = relationship("Vote")

    def __repr__(self) -> str:
        return f"<AuditEntry #{self.sequence} {self.event} instance={self.instance_id}>"


@event.listens_for(AuditEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableAuditError(f"Audit entry {target.id} is append-only and cannot be updated")


@event.listens_for(AuditEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableAuditError(f"Audit entry {target.id} is append-only and cannot be deleted")
