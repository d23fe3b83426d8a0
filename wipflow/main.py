from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from wipflow.core import database
from wipflow.core.config import settings
from wipflow.core.errors import StoreUnavailable
from wipflow.core.logging_setup import setup_logging
from wipflow.routers import health, tasks, jobs
from wipflow.services.lifecycle import TaskLifecycle, get_lifecycle

# Enregistre les tables dans Base.metadata
from wipflow.models import task as _task_model, job_run as _job_run_model  # noqa: F401


def create_app(lifecycle: Optional[TaskLifecycle] = None) -> FastAPI:
    if lifecycle is None:
        setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
        # Init DB
        database.Base.metadata.create_all(bind=database.engine)
        lifecycle = get_lifecycle()

    app = FastAPI(
        title="WIPflow API",
        version="0.1.0"
    )
    app.state.lifecycle = lifecycle

    @app.exception_handler(StoreUnavailable)
    def store_unavailable(request: Request, exc: StoreUnavailable):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Task store unavailable"},
        )

    # Routes
    app.include_router(health.router, prefix="/health")
    app.include_router(tasks.router)
    app.include_router(jobs.router)
    return app


app = create_app()
