"""Health check endpoints for StageFlow.

Provides Kubernetes-compatible health probes:
- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (can the app reach its database?)
"""

from typing import Dict, Any
from datetime import datetime

import psutil
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stageflow.api.deps import get_db
from stageflow.core.config import get_settings

router = APIRouter(tags=["health"])
settings = get_settings()

MEMORY_WARNING_PERCENT = 85


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "dialect": db.get_bind().dialect.name}


def check_memory() -> Dict[str, Any]:
    """Report memory pressure; never fails readiness on its own."""
    memory = psutil.virtual_memory()
    return {
        "status": "warning" if memory.percent >= MEMORY_WARNING_PERCENT else "healthy",
        "percent_used": memory.percent,
    }


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": settings.version,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    """
    Kubernetes liveness probe.

    Does not depend on external services.
    """
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "alive",
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


@router.get("/health/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """
    Kubernetes readiness probe.

    Failure means traffic should not be routed to this instance.
    """
    checks = {
        "database": check_database(db),
        "memory": check_memory(),
    }

    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]
    if unhealthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "checks": checks,
                "failed": unhealthy,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
