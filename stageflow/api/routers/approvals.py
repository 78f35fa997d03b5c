"""Approval workflow API endpoints.

Two groups of routes:

- ``/approvals/...``: reviewer work queues and operator retries
- ``/{request_domain}/{request_id}/...``: per-request workflow actions. The
  domain segment selects the approvable-request adapter, so this router is
  mounted last.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from stageflow.api.deps import get_db, get_engine, PageParams
from stageflow.api.schemas.common import ApiResponse, ErrorResponse, envelope
from stageflow.api.schemas.approval import (
    ApproveRequest,
    FinalizeResponse,
    InitializeWorkflowRequest,
    InstanceHistory,
    InstanceSummary,
    PendingApprovalResponse,
    VoteOutcome,
    instance_history,
    instance_summary,
    pending_approval,
    vote_outcome,
)
from stageflow.core.workflow import InstanceStatus, WorkflowEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/approvals", tags=["approvals"])
requests_router = APIRouter(tags=["requests"])


# Work queues
@router.get("/pending", response_model=ApiResponse[list[PendingApprovalResponse]])
async def list_pending_approvals(
    user_id: int = Query(..., alias="userId"),
    page: PageParams = Depends(),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Requests in any domain whose current node is waiting on this user."""
    items, total = engine.list_pending_for_reviewer(user_id, limit=page.limit, offset=page.offset)
    return envelope(
        [pending_approval(item) for item in items],
        limit=page.limit,
        offset=page.offset,
        total=total,
    )


@router.get("/{request_domain}/pending", response_model=ApiResponse[list[PendingApprovalResponse]])
async def list_pending_for_domain(
    request_domain: str,
    user_id: int = Query(..., alias="userId"),
    page: PageParams = Depends(),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Requests of one domain whose current node is waiting on this user."""
    engine.adapters.get(request_domain)
    items, total = engine.list_pending_for_reviewer(
        user_id, request_type=request_domain, limit=page.limit, offset=page.offset
    )
    return envelope(
        [pending_approval(item) for item in items],
        limit=page.limit,
        offset=page.offset,
        total=total,
    )


@router.post(
    "/instances/{instance_id}/finalize",
    response_model=ApiResponse[FinalizeResponse],
    responses={502: {"model": ErrorResponse}},
)
async def retry_finalization(instance_id: int, engine: WorkflowEngine = Depends(get_engine)):
    """Re-apply a terminal outcome whose request update previously failed."""
    error = engine.retry_finalization(instance_id)
    if error is not None:
        raise error

    instance = engine.get_instance(instance_id)
    return envelope(
        FinalizeResponse(
            instance_id=instance.id,
            approval_status=InstanceStatus(instance.status),
            outcome_synced_at=instance.outcome_synced_at,
        ),
        "Request outcome synced",
    )


# Per-request actions
@requests_router.post(
    "/{request_domain}/{request_id}/workflow",
    response_model=ApiResponse[InstanceSummary],
    status_code=status.HTTP_201_CREATED,
)
async def initialize_workflow(
    request_domain: str,
    request_id: str,
    payload: InitializeWorkflowRequest,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Start an approval workflow for a request."""
    instance = engine.initialize(payload.workflow_id, request_domain, request_id)
    db.commit()
    return envelope(instance_summary(instance), "Workflow initialized successfully")


@requests_router.post(
    "/{request_domain}/{request_id}/approve",
    response_model=ApiResponse[VoteOutcome],
    responses={502: {"model": ErrorResponse}},
)
async def approve_request(
    request_domain: str,
    request_id: str,
    payload: ApproveRequest,
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Approve or reject a request at its current node.

    When the vote finalizes the workflow but the request itself cannot be
    updated, the vote stands and the response is a 502 carrying the outcome.
    """
    engine.adapters.get(request_domain)
    instance = engine.get_active_or_latest(request_domain, request_id)
    result = engine.cast_vote(instance.id, payload.user_id, payload.action, payload.comments)
    outcome = vote_outcome(result)

    if result.adapter_error is not None:
        error = result.adapter_error
        return JSONResponse(
            status_code=error.http_status,
            content=jsonable_encoder(ErrorResponse(
                error=error.kind.value,
                detail=error.message,
                code=error.kind.value,
                data=outcome,
            )),
        )

    if result.status == InstanceStatus.PENDING:
        message = "Approval recorded"
    else:
        message = f"Request {result.status.value.lower()}"
    return envelope(outcome, message)


@requests_router.get(
    "/{request_domain}/{request_id}/approvals",
    response_model=ApiResponse[InstanceHistory],
)
async def get_request_approvals(
    request_domain: str,
    request_id: str,
    engine: WorkflowEngine = Depends(get_engine),
):
    """Workflow status, current node progress and full approval history of a request."""
    engine.adapters.get(request_domain)
    instance = engine.get_active_or_latest(request_domain, request_id)
    return envelope(instance_history(engine.get_history(instance.id)))
