"""Schemas for workflow definitions, nodes and node reviewers."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from stageflow.core.workflow import QuorumPolicy


class NodeUserResponse(BaseModel):
    id: int
    node_id: int
    user_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NodeResponse(BaseModel):
    id: int
    workflow_id: int
    name: str
    node_order: int
    approval_type: QuorumPolicy
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    users: List[NodeUserResponse] = []

    class Config:
        from_attributes = True


class WorkflowResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    nodes: Optional[List[NodeResponse]] = None

    class Config:
        from_attributes = True


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class NodeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    node_order: int
    approval_type: QuorumPolicy
    description: Optional[str] = None
    user_ids: List[int] = []


class NodeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    approval_type: Optional[QuorumPolicy] = None
    description: Optional[str] = None
    node_order: Optional[int] = None


class NodeOrder(BaseModel):
    id: int
    node_order: int


class ReorderNodesRequest(BaseModel):
    node_orders: List[NodeOrder]


class SetNodeUsersRequest(BaseModel):
    user_ids: List[int]


def node_user_response(link) -> NodeUserResponse:
    return NodeUserResponse(
        id=link.id,
        node_id=link.stage_id,
        user_id=link.reviewer_id,
        created_at=link.created_at,
    )


def node_response(stage) -> NodeResponse:
    return NodeResponse(
        id=stage.id,
        workflow_id=stage.definition_id,
        name=stage.name,
        node_order=stage.order,
        approval_type=QuorumPolicy(stage.quorum_policy),
        description=stage.description,
        created_at=stage.created_at,
        updated_at=stage.updated_at,
        users=[node_user_response(link) for link in stage.reviewers],
    )


def workflow_response(definition, *, include_nodes: bool = False) -> WorkflowResponse:
    return WorkflowResponse(
        id=definition.id,
        name=definition.name,
        description=definition.description,
        is_active=definition.is_active,
        created_at=definition.created_at,
        updated_at=definition.updated_at,
        nodes=[node_response(s) for s in definition.stages] if include_nodes else None,
    )
