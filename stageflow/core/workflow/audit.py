"""Approval audit log.

Append-only record of every vote and every instance transition. The engine
is the only writer; readers get entries in per-instance sequence order.
"""

from typing import Optional, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from stageflow.db.models import AuditEntry, AuditEvent, InstanceStage, Vote, WorkflowInstance


class ApprovalAuditLog:
    """Writes and reads audit entries for workflow instances."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        instance: WorkflowInstance,
        event: AuditEvent,
        *,
        stage: Optional[InstanceStage] = None,
        to_stage: Optional[InstanceStage] = None,
        actor_id: Optional[int] = None,
        vote: Optional[Vote] = None,
    ) -> AuditEntry:
        """
        Append one entry for an instance.

        The caller must hold the instance row lock so that sequence numbers
        are allocated in the order events actually happened.

        Args:
            instance: Instance the event belongs to
            event: Kind of event
            stage: Stage the event happened on
            to_stage: Stage the instance moved to (STAGE_ADVANCED only)
            actor_id: Reviewer who triggered the event
            vote: Vote recorded by, or that triggered, the event
        """
        entry = AuditEntry(
            instance_id=instance.id,
            sequence=self._next_sequence(instance.id),
            event=AuditEvent(event).value,
            stage_id=stage.stage_id if stage else None,
            stage_name=stage.name if stage else None,
            to_stage_id=to_stage.stage_id if to_stage else None,
            to_stage_name=to_stage.name if to_stage else None,
            actor_id=actor_id,
            vote_id=vote.id if vote else None,
            decision=vote.decision if vote else None,
            comments=vote.comments if vote else None,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def entries_for(self, instance_id: int) -> List[AuditEntry]:
        return (
            self.db.query(AuditEntry)
            .filter(AuditEntry.instance_id == instance_id)
            .order_by(AuditEntry.sequence.asc())
            .all()
        )

    def _next_sequence(self, instance_id: int) -> int:
        last = (
            self.db.query(func.max(AuditEntry.sequence))
            .filter(AuditEntry.instance_id == instance_id)
            .scalar()
        )
        return (last or 0) + 1
