"""Workflow instance models.

An instance binds a definition to one external request. The ordered stage
list is copied into ``InstanceStage`` rows at initialization so later edits
to the definition never change the path of an instance already in flight.
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stageflow.db.base import Base


class WorkflowInstance(Base):
    """
    Live binding of a workflow definition to one approvable request.

    ``active_key`` is set while the instance is PENDING and cleared when it
    finalizes; its unique constraint backs the one-active-instance-per-request
    rule at the database level.
    """
    __tablename__ = "workflow_instances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_definition_id = Column(
        Integer, ForeignKey("workflow_definitions.id"), nullable=False, index=True
    )

    # Target request (opaque to the engine)
    request_type = Column(String(64), nullable=False)
    target_request_id = Column(String(64), nullable=False, index=True)
    active_key = Column(String(140), nullable=True, unique=True)

    # Progress
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    current_position = Column(Integer, nullable=True)
    current_stage_id = Column(
        Integer, ForeignKey("workflow_stages.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Finalization tracking
    finalized_at = Column(DateTime, nullable=True)
    outcome_synced_at = Column(DateTime, nullable=True)
    last_adapter_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    definition = relationship("WorkflowDefinition")
    stages = relationship(
        "InstanceStage",
        back_populates="instance",
        order_by="InstanceStage.position",
        cascade="all, delete-orphan",
    )
    votes = relationship("Vote", back_populates="instance", order_by="Vote.id")

    @property
    def current_stage(self):
        if self.current_position is None:
            return None
        return self.stages[self.current_position]

    def __repr__(self) -> str:
        return f"<WorkflowInstance {self.request_type}/{self.target_request_id} [{self.status}]>"


class InstanceStage(Base):
    """Snapshot of one definition stage, captured when the instance started."""
    __tablename__ = "workflow_instance_stages"
    __table_args__ = (
        UniqueConstraint("instance_id", "position", name="uq_workflow_instance_stages_instance_position"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(
        Integer, ForeignKey("workflow_instances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)

    # Source stage; NULL once that stage has been deleted from the definition
    stage_id = Column(Integer, ForeignKey("workflow_stages.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    order = Column("node_order", Integer, nullable=False)
    quorum_policy = Column(String(10), nullable=False)
    reviewer_ids = Column(JSON, nullable=False, default=list)

    instance = relationship("WorkflowInstance", back_populates="stages")
    source_stage = relationship("WorkflowStage")

    def __repr__(self) -> str:
        return f"<InstanceStage {self.name} pos={self.position} [{self.quorum_policy}]>"


class Vote(Base):
    """A reviewer's single decision on one stage of one instance."""
    __tablename__ = "workflow_votes"
    __table_args__ = (
        UniqueConstraint(
            "instance_id", "instance_stage_id", "reviewer_id",
            name="uq_workflow_votes_instance_stage_reviewer",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(
        Integer, ForeignKey("workflow_instances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    instance_stage_id = Column(
        Integer, ForeignKey("workflow_instance_stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage_id = Column(Integer, nullable=True)
    reviewer_id = Column(Integer, nullable=False, index=True)
    decision = Column(String(10), nullable=False)
    comments = Column(Text, nullable=True)
    cast_at = Column(DateTime, default=datetime.utcnow)

    instance = relationship("WorkflowInstance", back_populates="votes")
    instance_stage = relationship("InstanceStage")

    def __repr__(self) -> str:
        return f"<Vote reviewer={self.reviewer_id} {self.decision}>"
