"""Workflow definition models.

A definition is an ordered list of stages (nodes); each stage carries a
quorum policy and the set of reviewers eligible to vote on it.
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stageflow.db.base import Base


class WorkflowDefinition(Base):
    """Reusable approval workflow template."""
    __tablename__ = "workflow_definitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stages = relationship(
        "WorkflowStage",
        back_populates="definition",
        order_by="WorkflowStage.order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<WorkflowDefinition {self.name} [{'active' if self.is_active else 'inactive'}]>"


class WorkflowStage(Base):
    """
    One ordered step of a workflow definition.

    ``order`` is only used for sorting; it is unique within a definition but
    gaps are allowed.
    """
    __tablename__ = "workflow_stages"
    __table_args__ = (
        UniqueConstraint("definition_id", "node_order", name="uq_workflow_stages_definition_order"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    definition_id = Column(
        Integer, ForeignKey("workflow_definitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order = Column("node_order", Integer, nullable=False)
    quorum_policy = Column(String(10), nullable=False, default="ALL")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    definition = relationship("WorkflowDefinition", back_populates="stages")
    reviewers = relationship(
        "StageReviewer",
        back_populates="stage",
        order_by="StageReviewer.reviewer_id",
        cascade="all, delete-orphan",
    )

    @property
    def reviewer_ids(self) -> set[int]:
        return {r.reviewer_id for r in self.reviewers}

    def __repr__(self) -> str:
        return f"<WorkflowStage {self.name} #{self.order} [{self.quorum_policy}]>"


class StageReviewer(Base):
    """Link between a stage and a reviewer identity from the user directory."""
    __tablename__ = "workflow_stage_reviewers"
    __table_args__ = (
        UniqueConstraint("stage_id", "reviewer_id", name="uq_workflow_stage_reviewers_stage_reviewer"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    stage_id = Column(
        Integer, ForeignKey("workflow_stages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reviewer_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    stage = relationship("WorkflowStage", back_populates="reviewers")

    def __repr__(self) -> str:
        return f"<StageReviewer stage={self.stage_id} reviewer={self.reviewer_id}>"
