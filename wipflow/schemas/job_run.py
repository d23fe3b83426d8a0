from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class TriageResult(BaseModel):
    """Résumé d'un run de triage quotidien"""
    tasks_moved_to_queued: int = 0
    tasks_promoted: int = 0
    tasks_processed: int = 0
    success: bool = True
    error: Optional[str] = None


class ArchiveResult(BaseModel):
    tasks_archived: int = 0
    cutoff: Optional[datetime] = None
    success: bool = True
    error: Optional[str] = None


class JobRunResponse(BaseModel):
    id: int
    job_name: str
    started_at: datetime
    finished_at: Optional[datetime]
    success: bool
    error_message: Optional[str]
    execution_time_ms: Optional[int]
    tasks_moved_to_queued: int
    tasks_promoted: int
    tasks_archived: int
    tasks_processed: int

    model_config = ConfigDict(from_attributes=True)


class JobScheduleResponse(BaseModel):
    job_name: str
    cron: str
    timezone: str
