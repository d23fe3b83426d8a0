import logging
from datetime import timedelta

from wipflow.core.clock import Clock, utcnow
from wipflow.core.config import RetentionPolicy
from wipflow.core.errors import EngineError
from wipflow.models.enums import TaskStatus
from wipflow.schemas.job_run import ArchiveResult
from wipflow.services.task_store import TaskStore
from wipflow.services.triage_service import chunked

logger = logging.getLogger(__name__)


class StaleArchiver:
    """Archive les tâches Queued plus vieilles que le seuil de rétention. À lancer après le triage."""

    def __init__(self, store: TaskStore, retention: RetentionPolicy, clock: Clock = utcnow, batch_max_writes=None):
        self.store = store
        self.retention = retention
        self.clock = clock
        self.batch_max_writes = batch_max_writes or store.max_batch_size

    def cutoff(self):
        return self.clock() - timedelta(days=self.retention.stale_after_days)

    def run(self) -> ArchiveResult:
        logger.info("Starting archive old tasks job...")
        result = ArchiveResult(cutoff=self.cutoff())

        try:
            stale = list(self.store.query(status=TaskStatus.QUEUED, created_before=result.cutoff))
            if not stale:
                logger.info("No stale tasks to archive")
                return result

            writes = [(t.id, {"status": TaskStatus.ARCHIVED}) for t in stale]
            for batch in chunked(writes, self.batch_max_writes):
                self.store.batch_write(batch)
                result.tasks_archived += len(batch)
        except EngineError as e:
            logger.exception("Archive old tasks failed")
            result.success, result.error = False, str(e)
            return result

        logger.info("Archived %s stale tasks (created before %s)", result.tasks_archived, result.cutoff)
        return result
