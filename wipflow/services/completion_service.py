import logging

from wipflow.core.clock import Clock, utcnow
from wipflow.core.errors import EngineError, TaskNotFound
from wipflow.core.events import TaskUpdated
from wipflow.models.enums import TaskStatus
from wipflow.services.task_store import TaskStore

logger = logging.getLogger(__name__)


class CompletionRecorder:
    """Horodate completed_on quand une tâche passe à Done."""

    def __init__(self, store: TaskStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def on_task_updated(self, event: TaskUpdated) -> None:
        before, after = event.before, event.after
        if event.compensating:
            return
        if before.status == TaskStatus.DONE or after.status != TaskStatus.DONE:
            return

        try:
            current = self.store.get(after.id)
            if current.status != TaskStatus.DONE:
                logger.info("Task %s left Done before its stamp, skipping", after.id)
                return
            # Redélivrance du même événement: déjà horodaté depuis
            if current.completed_on is not None and current.completed_on != after.completed_on:
                logger.debug("Task %s already stamped at %s, skipping", after.id, current.completed_on)
                return
            self.store.update_fields(after.id, {"completed_on": self.clock()})
            logger.info("Task %s marked as completed", after.id)
        except TaskNotFound:
            logger.warning("Task %s vanished before completion stamp", after.id)
        except EngineError:
            logger.exception("Completion stamp failed for task %s", after.id)
