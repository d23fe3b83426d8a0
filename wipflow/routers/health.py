from fastapi import APIRouter, Depends, HTTPException, status

from wipflow.core.errors import StoreUnavailable
from wipflow.models.enums import Priority, TaskStatus
from wipflow.routers.tasks import get_lifecycle
from wipflow.services.lifecycle import TaskLifecycle

router = APIRouter()

@router.get("/z")
def healthz():
    # Check si l'API est up
    return {"status": "ok"}


@router.get("/ready")
def ready(lifecycle: TaskLifecycle = Depends(get_lifecycle)):
    # Le store répond-il ? (une requête de comptage suffit)
    try:
        lifecycle.store.count("__probe__", TaskStatus.ACTIVE, Priority.P1)
    except StoreUnavailable:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Task store unavailable")
    return {"status": "ready"}
