"""Workflow definition and node API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stageflow.api.deps import get_db, require_definition_manager, PageParams
from stageflow.api.schemas.common import ApiResponse, envelope
from stageflow.api.schemas.workflow import (
    NodeCreate,
    NodeResponse,
    NodeUpdate,
    ReorderNodesRequest,
    WorkflowCreate,
    WorkflowResponse,
    WorkflowUpdate,
    node_response,
    workflow_response,
)
from stageflow.core.errors import NotFoundError
from stageflow.core.workflow import WorkflowDefinitionStore

router = APIRouter(prefix="/workflows", tags=["workflows"])


def _stage_of(store: WorkflowDefinitionStore, workflow_id: int, node_id: int):
    stage = store.get_stage(node_id)
    if stage.definition_id != workflow_id:
        raise NotFoundError("Node", node_id)
    return stage


# Definitions
@router.get("", response_model=ApiResponse[List[WorkflowResponse]])
async def list_workflows(
    active: Optional[bool] = Query(None),
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    """List workflow definitions."""
    definitions, total = WorkflowDefinitionStore(db).list_definitions(
        active=active, limit=page.limit, offset=page.offset
    )
    return envelope(
        [workflow_response(d) for d in definitions],
        limit=page.limit,
        offset=page.offset,
        total=total,
    )


@router.get("/{workflow_id}", response_model=ApiResponse[WorkflowResponse])
async def get_workflow(workflow_id: int, db: Session = Depends(get_db)):
    """Get a workflow with its nodes and their reviewers."""
    definition = WorkflowDefinitionStore(db).get_definition(workflow_id)
    return envelope(workflow_response(definition, include_nodes=True))


@router.post(
    "",
    response_model=ApiResponse[WorkflowResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_definition_manager)],
)
async def create_workflow(payload: WorkflowCreate, db: Session = Depends(get_db)):
    definition = WorkflowDefinitionStore(db).create_definition(
        payload.name, payload.description, is_active=payload.is_active
    )
    db.commit()
    db.refresh(definition)
    return envelope(workflow_response(definition, include_nodes=True), "Workflow created successfully")


@router.put(
    "/{workflow_id}",
    response_model=ApiResponse[WorkflowResponse],
    dependencies=[Depends(require_definition_manager)],
)
async def update_workflow(workflow_id: int, payload: WorkflowUpdate, db: Session = Depends(get_db)):
    definition = WorkflowDefinitionStore(db).update_definition(
        workflow_id, **payload.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(definition)
    return envelope(workflow_response(definition, include_nodes=True), "Workflow updated successfully")


@router.delete(
    "/{workflow_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(require_definition_manager)],
)
async def delete_workflow(workflow_id: int, db: Session = Depends(get_db)):
    """Delete a workflow that was never used. Used workflows must be deactivated instead."""
    WorkflowDefinitionStore(db).delete_definition(workflow_id)
    db.commit()
    return envelope(message="Workflow deleted successfully")


# Nodes
@router.get("/{workflow_id}/nodes", response_model=ApiResponse[List[NodeResponse]])
async def list_nodes(workflow_id: int, db: Session = Depends(get_db)):
    stages = WorkflowDefinitionStore(db).list_stages(workflow_id)
    return envelope([node_response(s) for s in stages])


@router.post(
    "/{workflow_id}/nodes",
    response_model=ApiResponse[NodeResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_definition_manager)],
)
async def create_node(workflow_id: int, payload: NodeCreate, db: Session = Depends(get_db)):
    stage = WorkflowDefinitionStore(db).add_stage(
        workflow_id,
        payload.name,
        payload.approval_type,
        payload.node_order,
        description=payload.description,
        reviewer_ids=payload.user_ids,
    )
    db.commit()
    db.refresh(stage)
    return envelope(node_response(stage), "Node created successfully")


# Registered before /{node_id} so "reorder" is not parsed as a node id
@router.put(
    "/{workflow_id}/nodes/reorder",
    response_model=ApiResponse[List[NodeResponse]],
    dependencies=[Depends(require_definition_manager)],
)
async def reorder_nodes(workflow_id: int, payload: ReorderNodesRequest, db: Session = Depends(get_db)):
    stages = WorkflowDefinitionStore(db).reorder_stages(
        workflow_id, {item.id: item.node_order for item in payload.node_orders}
    )
    db.commit()
    return envelope([node_response(s) for s in stages], "Nodes reordered successfully")


@router.put(
    "/{workflow_id}/nodes/{node_id}",
    response_model=ApiResponse[NodeResponse],
    dependencies=[Depends(require_definition_manager)],
)
async def update_node(
    workflow_id: int, node_id: int, payload: NodeUpdate, db: Session = Depends(get_db)
):
    store = WorkflowDefinitionStore(db)
    _stage_of(store, workflow_id, node_id)

    fields = payload.model_dump(exclude_unset=True)
    if "approval_type" in fields:
        fields["quorum_policy"] = fields.pop("approval_type")
    if "node_order" in fields:
        fields["order"] = fields.pop("node_order")

    stage = store.update_stage(node_id, **fields)
    db.commit()
    db.refresh(stage)
    return envelope(node_response(stage), "Node updated successfully")


@router.delete(
    "/{workflow_id}/nodes/{node_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(require_definition_manager)],
)
async def delete_node(workflow_id: int, node_id: int, db: Session = Depends(get_db)):
    store = WorkflowDefinitionStore(db)
    _stage_of(store, workflow_id, node_id)
    store.delete_stage(node_id)
    db.commit()
    return envelope(message="Node deleted successfully")
