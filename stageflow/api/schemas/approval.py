"""Schemas for workflow instances, votes and pending approvals."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from stageflow.core.workflow import InstanceStatus, QuorumPolicy, VoteDecision
from stageflow.core.workflow import History, PendingApproval, VoteResult


class InitializeWorkflowRequest(BaseModel):
    workflow_id: int


class ApproveRequest(BaseModel):
    user_id: int
    action: VoteDecision
    comments: Optional[str] = None


class InstanceSummary(BaseModel):
    instance_id: int
    request_type: str
    request_id: str
    workflow_id: int
    current_node_order: Optional[int] = None
    approval_status: InstanceStatus


class NodeRef(BaseModel):
    id: Optional[int] = None
    name: str
    node_order: int


class NodeStatus(BaseModel):
    approved_count: int
    total_required: int
    approval_type: QuorumPolicy


class VoteOutcome(BaseModel):
    approval_recorded: bool
    ticket_status: InstanceStatus
    moved_to_next_node: bool
    next_node: Optional[NodeRef] = None
    node_status: NodeStatus


class CurrentNode(BaseModel):
    id: Optional[int] = None
    name: str
    node_order: int
    approval_type: QuorumPolicy
    approved_count: int
    total_required: int


class VoteResponse(BaseModel):
    id: int
    node_id: Optional[int] = None
    node_name: str
    node_order: int
    user_id: int
    status: str
    comments: Optional[str] = None
    approved_at: Optional[datetime] = None


class AuditEntryResponse(BaseModel):
    sequence: int
    event: str
    node_id: Optional[int] = None
    node_name: Optional[str] = None
    to_node_id: Optional[int] = None
    to_node_name: Optional[str] = None
    user_id: Optional[int] = None
    decision: Optional[str] = None
    comments: Optional[str] = None
    created_at: Optional[datetime] = None


class InstanceHistory(BaseModel):
    instance_id: int
    request_type: str
    request_id: str
    workflow_id: int
    workflow_name: str
    current_node_order: Optional[int] = None
    approval_status: InstanceStatus
    current_node: Optional[CurrentNode] = None
    approvals: List[VoteResponse] = []
    history: List[AuditEntryResponse] = []


class PendingApprovalResponse(BaseModel):
    instance_id: int
    request_type: str
    request_id: str
    node_id: Optional[int] = None
    node_name: str
    node_order: int
    approval_type: QuorumPolicy
    approved_count: int
    total_required: int
    workflow_name: str
    created_at: Optional[datetime] = None


class FinalizeResponse(BaseModel):
    instance_id: int
    approval_status: InstanceStatus
    outcome_synced_at: Optional[datetime] = None


# Vote decisions map to the per-approval status the dashboard displays
DECISION_STATUS = {
    VoteDecision.APPROVE.value: "APPROVED",
    VoteDecision.REJECT.value: "REJECTED",
}


def instance_summary(instance) -> InstanceSummary:
    stage = instance.current_stage
    return InstanceSummary(
        instance_id=instance.id,
        request_type=instance.request_type,
        request_id=instance.target_request_id,
        workflow_id=instance.workflow_definition_id,
        current_node_order=stage.order if stage is not None else None,
        approval_status=InstanceStatus(instance.status),
    )


def vote_outcome(result: VoteResult) -> VoteOutcome:
    next_node = None
    if result.next_stage is not None:
        next_node = NodeRef(
            id=result.next_stage.stage_id,
            name=result.next_stage.name,
            node_order=result.next_stage.order,
        )
    return VoteOutcome(
        approval_recorded=True,
        ticket_status=result.status,
        moved_to_next_node=result.moved_to_next_node,
        next_node=next_node,
        node_status=NodeStatus(
            approved_count=result.approved_count,
            total_required=result.total_required,
            approval_type=result.quorum_policy,
        ),
    )


def instance_history(history: History) -> InstanceHistory:
    instance = history.instance

    current = None
    if history.current_stage is not None:
        stage, tally = history.current_stage.stage, history.current_stage.tally
        current = CurrentNode(
            id=stage.stage_id,
            name=stage.name,
            node_order=stage.order,
            approval_type=QuorumPolicy(stage.quorum_policy),
            approved_count=tally.approved_count,
            total_required=tally.total_required,
        )

    return InstanceHistory(
        instance_id=instance.id,
        request_type=instance.request_type,
        request_id=instance.target_request_id,
        workflow_id=instance.workflow_definition_id,
        workflow_name=instance.definition.name,
        current_node_order=current.node_order if current else None,
        approval_status=history.status,
        current_node=current,
        approvals=[
            VoteResponse(
                id=v.id,
                node_id=v.stage_id,
                node_name=v.instance_stage.name,
                node_order=v.instance_stage.order,
                user_id=v.reviewer_id,
                status=DECISION_STATUS[v.decision],
                comments=v.comments,
                approved_at=v.cast_at,
            )
            for v in history.votes
        ],
        history=[
            AuditEntryResponse(
                sequence=e.sequence,
                event=e.event,
                node_id=e.stage_id,
                node_name=e.stage_name,
                to_node_id=e.to_stage_id,
                to_node_name=e.to_stage_name,
                user_id=e.actor_id,
                decision=e.decision,
                comments=e.comments,
                created_at=e.created_at,
            )
            for e in history.entries
        ],
    )


def pending_approval(item: PendingApproval) -> PendingApprovalResponse:
    return PendingApprovalResponse(
        instance_id=item.instance.id,
        request_type=item.instance.request_type,
        request_id=item.instance.target_request_id,
        node_id=item.stage.stage_id,
        node_name=item.stage.name,
        node_order=item.stage.order,
        approval_type=QuorumPolicy(item.stage.quorum_policy),
        approved_count=item.tally.approved_count,
        total_required=item.tally.total_required,
        workflow_name=item.workflow_name,
        created_at=item.instance.created_at,
    )
