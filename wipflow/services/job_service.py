"""
Points d'entrée des jobs planifiés.

Chaque job est lancé par un déclencheur externe (cron + fuseau). Un run
n'est jamais retenté; son résumé est gardé dans la table job_runs.
"""

import logging
import time
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wipflow.models.job_run import JobRun
from wipflow.schemas.job_run import ArchiveResult, JobScheduleResponse, TriageResult
from wipflow.services.lifecycle import TaskLifecycle, get_lifecycle

logger = logging.getLogger(__name__)

TRIAGE_JOB = "daily_triage"
ARCHIVE_JOB = "archive_stale"


def record_job_run(
    lifecycle: TaskLifecycle,
    job_name: str,
    started_at: datetime,
    elapsed_ms: int,
    result: Union[TriageResult, ArchiveResult],
) -> None:
    run = JobRun(
        job_name=job_name,
        started_at=started_at,
        finished_at=lifecycle.clock(),
        success=result.success,
        error_message=result.error,
        execution_time_ms=elapsed_ms,
        tasks_moved_to_queued=getattr(result, "tasks_moved_to_queued", 0),
        tasks_promoted=getattr(result, "tasks_promoted", 0),
        tasks_archived=getattr(result, "tasks_archived", 0),
        tasks_processed=getattr(result, "tasks_processed", 0),
    )
    db = lifecycle.session_factory()
    try:
        db.add(run)
        db.commit()
    except SQLAlchemyError:
        # Le résumé est de l'observabilité, le run lui-même est déjà fait
        db.rollback()
        logger.exception("Could not persist %s run summary", job_name)
    finally:
        db.close()


def run_daily_triage(lifecycle: Optional[TaskLifecycle] = None) -> TriageResult:
    lifecycle = lifecycle or get_lifecycle()
    started_at = lifecycle.clock()
    start = time.monotonic()

    try:
        result = lifecycle.triage.run()
    except Exception as e:
        logger.exception("Daily triage failed")
        result = TriageResult(success=False, error=str(e))

    record_job_run(lifecycle, TRIAGE_JOB, started_at, int((time.monotonic() - start) * 1000), result)
    return result


def archive_stale_tasks(lifecycle: Optional[TaskLifecycle] = None) -> ArchiveResult:
    lifecycle = lifecycle or get_lifecycle()
    started_at = lifecycle.clock()
    start = time.monotonic()

    try:
        result = lifecycle.archiver.run()
    except Exception as e:
        logger.exception("Archive old tasks failed")
        result = ArchiveResult(success=False, error=str(e))

    record_job_run(lifecycle, ARCHIVE_JOB, started_at, int((time.monotonic() - start) * 1000), result)
    return result


def list_job_runs(db: Session, job_name: Optional[str] = None, limit: int = 20) -> List[JobRun]:
    query = db.query(JobRun)
    if job_name:
        query = query.filter(JobRun.job_name == job_name)
    return query.order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit).all()


def get_schedules(lifecycle: TaskLifecycle) -> List[JobScheduleResponse]:
    config = lifecycle.config
    return [
        JobScheduleResponse(job_name=TRIAGE_JOB, **config.triage_schedule.model_dump()),
        JobScheduleResponse(job_name=ARCHIVE_JOB, **config.archive_schedule.model_dump()),
    ]
