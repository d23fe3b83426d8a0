from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from wipflow.routers.tasks import get_lifecycle
from wipflow.schemas.job_run import ArchiveResult, JobRunResponse, JobScheduleResponse, TriageResult
from wipflow.services.job_service import (
    archive_stale_tasks,
    get_schedules,
    list_job_runs,
    run_daily_triage,
)
from wipflow.services.lifecycle import TaskLifecycle

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/daily-triage", response_model=TriageResult)
def trigger_daily_triage(lifecycle: TaskLifecycle = Depends(get_lifecycle)):
    """
    Cible HTTP du déclencheur externe.

    Répond 200 même si le run a échoué (voir `success`): un déclencheur
    ne doit pas relancer un run à moitié appliqué.
    """
    return run_daily_triage(lifecycle)


@router.post("/archive-stale", response_model=ArchiveResult)
def trigger_archive_stale(lifecycle: TaskLifecycle = Depends(get_lifecycle)):
    return archive_stale_tasks(lifecycle)


@router.get("/runs", response_model=List[JobRunResponse])
def job_runs(
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    job_name: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=200)
):
    db = lifecycle.session_factory()
    try:
        return list_job_runs(db, job_name=job_name, limit=limit)
    finally:
        db.close()


@router.get("/schedule", response_model=List[JobScheduleResponse])
def schedule(lifecycle: TaskLifecycle = Depends(get_lifecycle)):
    return get_schedules(lifecycle)
