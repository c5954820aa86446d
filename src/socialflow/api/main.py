"""FastAPI application."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from socialflow.api.routes import health, schedules, webhooks, workflows
from socialflow.errors import (
    CronExpressionError,
    ExecutionNotFoundError,
    ScheduleNotFoundError,
    StructuralError,
    TriggerNotFoundError,
    WorkflowNotFoundError,
)
from socialflow.observability import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Socialflow",
    description="Workflow execution engine for social publishing graphs",
    version="0.1.0",
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(workflows.router, tags=["workflows"])
app.include_router(schedules.router, tags=["schedules"])
app.include_router(webhooks.router, tags=["webhooks"])


@app.exception_handler(StructuralError)
def structural_error_handler(request: Request, exc: StructuralError) -> JSONResponse:
    issues = [getattr(i, "model_dump", lambda: {"message": str(i)})() for i in exc.issues]
    return JSONResponse(status_code=422, content={"detail": str(exc), "issues": issues})


@app.exception_handler(CronExpressionError)
def cron_error_handler(request: Request, exc: CronExpressionError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(WorkflowNotFoundError)
@app.exception_handler(ScheduleNotFoundError)
@app.exception_handler(ExecutionNotFoundError)
@app.exception_handler(TriggerNotFoundError)
def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info("Not found", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.get("/")
def root() -> dict:
    """Root endpoint."""
    return {
        "service": "socialflow",
        "version": "0.1.0",
        "docs": "/docs",
    }
