"""Ticket reprint request endpoints."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stageflow.api.deps import get_db, PageParams
from stageflow.api.schemas.common import ApiResponse, envelope
from stageflow.db.models import ReprintStatus
from stageflow.services.reprint import ReprintRequestService

router = APIRouter(prefix="/reprint-requests", tags=["reprint-requests"])


# Schemas
class ReprintRequestCreate(BaseModel):
    ticket_id: int
    trace_no: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(..., min_length=1)
    requested_copies: int = Field(1, ge=1)
    notes: Optional[str] = None
    requested_by: Optional[int] = None


class ReprintRequestResponse(BaseModel):
    id: int
    ticket_id: int
    trace_no: str
    reason: str
    requested_copies: int
    notes: Optional[str]
    status: ReprintStatus
    requested_by: Optional[int]
    approved_by: Optional[int]
    approved_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Endpoints
@router.get("", response_model=ApiResponse[List[ReprintRequestResponse]])
async def list_reprint_requests(
    status: Optional[ReprintStatus] = Query(None),
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    items, total = ReprintRequestService(db).list(status=status, limit=page.limit, offset=page.offset)
    return envelope(
        [ReprintRequestResponse.model_validate(r) for r in items],
        limit=page.limit,
        offset=page.offset,
        total=total,
    )


@router.get("/{request_id}", response_model=ApiResponse[ReprintRequestResponse])
async def get_reprint_request(request_id: int, db: Session = Depends(get_db)):
    request = ReprintRequestService(db).get(request_id)
    return envelope(ReprintRequestResponse.model_validate(request))


@router.post(
    "",
    response_model=ApiResponse[ReprintRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_reprint_request(payload: ReprintRequestCreate, db: Session = Depends(get_db)):
    request = ReprintRequestService(db).create(
        payload.ticket_id,
        payload.trace_no,
        payload.reason,
        requested_copies=payload.requested_copies,
        notes=payload.notes,
        requested_by=payload.requested_by,
    )
    db.commit()
    db.refresh(request)
    return envelope(ReprintRequestResponse.model_validate(request), "Reprint request created successfully")
