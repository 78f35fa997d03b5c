"""Node reviewer assignment endpoints.

Reviewer edits apply to in-flight requests too, so every change is followed
by a quorum re-check of the requests currently waiting on the node.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stageflow.api.deps import get_db, get_engine, require_definition_manager
from stageflow.api.schemas.common import ApiResponse, envelope
from stageflow.api.schemas.workflow import NodeUserResponse, SetNodeUsersRequest, node_user_response
from stageflow.core.workflow import NodeAssignmentManager, WorkflowEngine

router = APIRouter(prefix="/nodes", tags=["nodes"])


@router.get("/{node_id}/users", response_model=ApiResponse[List[NodeUserResponse]])
async def get_node_users(node_id: int, db: Session = Depends(get_db)):
    links = NodeAssignmentManager(db).list_reviewers(node_id)
    return envelope([node_user_response(link) for link in links])


@router.post(
    "/{node_id}/users",
    response_model=ApiResponse[List[NodeUserResponse]],
    dependencies=[Depends(require_definition_manager)],
)
@router.put(
    "/{node_id}/users",
    response_model=ApiResponse[List[NodeUserResponse]],
    dependencies=[Depends(require_definition_manager)],
)
async def set_node_users(
    node_id: int,
    payload: SetNodeUsersRequest,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Replace the full reviewer set of a node. Users not listed are detached."""
    stage = NodeAssignmentManager(db).set_reviewers(node_id, payload.user_ids)
    db.commit()
    engine.reevaluate_stage(node_id)
    db.refresh(stage)
    return envelope([node_user_response(link) for link in stage.reviewers], "Node users updated")


@router.delete(
    "/{node_id}/users/{user_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(require_definition_manager)],
)
async def remove_node_user(
    node_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    NodeAssignmentManager(db).remove_reviewer(node_id, user_id)
    db.commit()
    engine.reevaluate_stage(node_id)
    return envelope(message="User removed from node")
