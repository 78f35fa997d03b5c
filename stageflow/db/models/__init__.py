"""Database models for StageFlow."""

from stageflow.db.models.workflow import WorkflowDefinition, WorkflowStage, StageReviewer
from stageflow.db.models.instance import WorkflowInstance, InstanceStage, Vote
from stageflow.db.models.audit import AuditEntry, AuditEvent, ImmutableAuditError
from stageflow.db.models.reprint import ReprintRequest, ReprintStatus

__all__ = [
    "WorkflowDefinition",
    "WorkflowStage",
    "StageReviewer",
    "WorkflowInstance",
    "InstanceStage",
    "Vote",
    "AuditEntry",
    "AuditEvent",
    "ImmutableAuditError",
    "ReprintRequest",
    "ReprintStatus",
]
