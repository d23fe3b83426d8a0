from sqlalchemy import Column, Integer, String, DateTime, Boolean
from wipflow.core.clock import utcnow
from wipflow.core.database import Base

class JobRun(Base):
    __tablename__ = "job_runs"

    id = Column(Integer, primary_key=True, index=True)
    job_name = Column(String, nullable=False, index=True)  # "daily_triage", "archive_stale"
    started_at = Column(DateTime, default=utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    success = Column(Boolean, default=True)
    error_message = Column(String, nullable=True)  # si failure
    execution_time_ms = Column(Integer, nullable=True)

    # compteurs du résumé
    tasks_moved_to_queued = Column(Integer, default=0)
    tasks_promoted = Column(Integer, default=0)
    tasks_archived = Column(Integer, default=0)
    tasks_processed = Column(Integer, default=0)
