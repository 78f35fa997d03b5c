import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stageflow.common.logger import configure_from_settings
from stageflow.core.config import get_settings
from stageflow.core.errors import WorkflowError
from stageflow.api.schemas.common import ErrorResponse
from stageflow.api.routers import workflows, nodes, approvals, reprint_requests, health
from stageflow.api.middleware.request_log import RequestLogMiddleware

settings = get_settings()
configure_from_settings(settings)
logger = logging.getLogger("stageflow.api")

app = FastAPI(
    title=settings.app_name,
    description="Multi-stage approval workflow engine",
    version=settings.version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    body = ErrorResponse(error=exc.kind.value, detail=exc.message, code=exc.kind.value)
    return JSONResponse(status_code=exc.http_status, content=jsonable_encoder(body, exclude_none=True))


# Include routers; the per-request routes match any domain segment, so they go last
app.include_router(health.router)
app.include_router(workflows.router, prefix="/api")
app.include_router(nodes.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(reprint_requests.router, prefix="/api")
app.include_router(approvals.requests_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else None,
    }
