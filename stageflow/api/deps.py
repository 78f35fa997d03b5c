from typing import Generator, Optional

from fastapi import Depends, Header, Query
from sqlalchemy.orm import Session

from stageflow.db.session import SessionLocal
from stageflow.core.config import Settings, get_settings
from stageflow.core.errors import AuthorizationError, ErrorKind
from stageflow.core.roles import Role, parse_role, can_manage_definitions
from stageflow.core.workflow import AdapterRegistry, WorkflowEngine
from stageflow.services.reprint import ReprintRequestAdapter


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_adapters(db: Session = Depends(get_db)) -> AdapterRegistry:
    """Adapters for every request domain, bound to the request's session."""
    registry = AdapterRegistry()
    registry.register(ReprintRequestAdapter(db))
    return registry


def get_engine(
    db: Session = Depends(get_db),
    adapters: AdapterRegistry = Depends(get_adapters),
) -> WorkflowEngine:
    return WorkflowEngine(db, adapters)


def get_caller_role(x_user_role: Optional[str] = Header(None)) -> Role:
    """Canonical role of the caller, translated from the X-User-Role header."""
    return parse_role(x_user_role)


def require_definition_manager(
    role: Role = Depends(get_caller_role),
    settings: Settings = Depends(get_settings),
) -> Role:
    """Only definition managers may change workflows, nodes and reviewers."""
    if settings.require_admin_for_definitions and not can_manage_definitions(role):
        raise AuthorizationError(
            ErrorKind.FORBIDDEN,
            "Only administrators can manage workflow definitions",
        )
    return role


class PageParams:
    """Offset pagination query parameters, clamped to configured bounds."""

    def __init__(
        self,
        limit: Optional[int] = Query(None, ge=1),
        offset: int = Query(0, ge=0),
        settings: Settings = Depends(get_settings),
    ):
        self.limit = min(limit or settings.default_page_limit, settings.max_page_limit)
        self.offset = offset
