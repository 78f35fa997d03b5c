"""Ticket reprint requests.

Handles:
- Creating and listing reprint requests
- Projecting workflow outcomes onto them through ``ReprintRequestAdapter``
"""

import logging
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from stageflow.core.errors import AdapterError, NotFoundError
from stageflow.core.workflow.states import InstanceStatus
from stageflow.db.models import ReprintRequest, ReprintStatus

logger = logging.getLogger(__name__)

REQUEST_TYPE = "reprint-requests"

OUTCOME_STATUS = {
    InstanceStatus.APPROVED: ReprintStatus.APPROVED,
    InstanceStatus.REJECTED: ReprintStatus.REJECTED,
}


class ReprintRequestService:
    """Persistence for reprint requests. Methods flush; routers commit."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        ticket_id: int,
        trace_no: str,
        reason: str,
        *,
        requested_copies: int = 1,
        notes: Optional[str] = None,
        requested_by: Optional[int] = None,
    ) -> ReprintRequest:
        request = ReprintRequest(
            ticket_id=ticket_id,
            trace_no=trace_no,
            reason=reason,
            requested_copies=requested_copies,
            notes=notes,
            requested_by=requested_by,
            status=ReprintStatus.PENDING.value,
        )
        self.db.add(request)
        self.db.flush()
        logger.info("Created reprint request %s for ticket %s", request.id, ticket_id)
        return request

    def get(self, request_id: int) -> ReprintRequest:
        request = self.db.query(ReprintRequest).filter(ReprintRequest.id == request_id).first()
        if not request:
            raise NotFoundError("Reprint request", request_id)
        return request

    def list(
        self,
        *,
        status: Optional[ReprintStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[ReprintRequest], int]:
        query = self.db.query(ReprintRequest)
        if status:
            query = query.filter(ReprintRequest.status == ReprintStatus(status).value)

        total = query.count()
        items = (
            query.order_by(ReprintRequest.created_at.desc(), ReprintRequest.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total


class ReprintRequestAdapter:
    """Approvable-request adapter for the ``reprint-requests`` domain."""

    request_type = REQUEST_TYPE

    def __init__(self, db: Session):
        self.db = db

    def exists(self, request_id: str) -> bool:
        request_pk = _parse_id(request_id)
        if request_pk is None:
            return False
        return self.db.query(ReprintRequest.id).filter(ReprintRequest.id == request_pk).first() is not None

    def on_finalized(
        self, request_id: str, outcome: InstanceStatus, decided_by: Optional[int] = None
    ) -> None:
        """
        Stamp the workflow outcome on the reprint request.

        Re-applying the same outcome is a no-op.

        Raises:
            AdapterError: Request vanished, or already carries a conflicting status
        """
        target = OUTCOME_STATUS.get(InstanceStatus(outcome))
        if target is None:
            raise AdapterError(
                f"Cannot apply non-terminal outcome {outcome}",
                request_type=self.request_type,
                request_id=request_id,
            )

        request_pk = _parse_id(request_id)
        request = None
        if request_pk is not None:
            request = self.db.query(ReprintRequest).filter(ReprintRequest.id == request_pk).first()
        if request is None:
            raise AdapterError(
                f"Reprint request {request_id} no longer exists",
                request_type=self.request_type,
                request_id=request_id,
            )

        if request.status == target.value:
            return
        if request.status != ReprintStatus.PENDING.value:
            raise AdapterError(
                f"Reprint request {request_id} is already {request.status}",
                request_type=self.request_type,
                request_id=request_id,
            )

        request.status = target.value
        if target == ReprintStatus.APPROVED:
            request.approved_at = datetime.utcnow()
            request.approved_by = decided_by
        self.db.flush()
        logger.info("Reprint request %s marked %s", request_id, target.value)


def _parse_id(request_id: str) -> Optional[int]:
    try:
        return int(request_id)
    except (TypeError, ValueError):
        return None
