"""Approval workflow engine."""

from .states import (
    InstanceStatus,
    QuorumPolicy,
    VoteDecision,
    InstanceTransition,
    can_transition,
    is_terminal,
)
from .machine import QuorumStateMachine, StageTally, Evaluation
from .adapter import ApprovableRequestAdapter, AdapterRegistry
from .audit import ApprovalAuditLog
from .definitions import WorkflowDefinitionStore
from .assignments import NodeAssignmentManager
from .engine import WorkflowEngine, VoteResult, History, StageSummary, PendingApproval

__all__ = [
    "InstanceStatus",
    "QuorumPolicy",
    "VoteDecision",
    "InstanceTransition",
    "can_transition",
    "is_terminal",
    "QuorumStateMachine",
    "StageTally",
    "Evaluation",
    "ApprovableRequestAdapter",
    "AdapterRegistry",
    "ApprovalAuditLog",
    "WorkflowDefinitionStore",
    "NodeAssignmentManager",
    "WorkflowEngine",
    "VoteResult",
    "History",
    "StageSummary",
    "PendingApproval",
]
