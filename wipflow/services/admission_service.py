"""
Admission control for the Active state.

The store has no pre-commit hook, so an admission is checked after the write
landed and corrected afterwards: a created task is deleted, an update is
reverted to its previous snapshot. The count spans many documents and is taken
without a lock, so two concurrent admissions for the same (owner, priority)
can both pass: the cap is best-effort, not exact.
"""

import logging

from wipflow.core.config import WipLimits
from wipflow.core.errors import EngineError, TaskNotFound
from wipflow.core.events import TaskCreated, TaskUpdated
from wipflow.models.enums import Priority, TaskStatus
from wipflow.services.task_store import TaskStore

logger = logging.getLogger(__name__)


class AdmissionController:
    def __init__(self, store: TaskStore, limits: WipLimits):
        self.store = store
        self.limits = limits

    def would_exceed(self, owner: str, priority: Priority) -> bool:
        """
        Prédicat WIP, évalué après coup.

        La tâche en cours est déjà comptée (le document existe), donc
        current == limit est accepté et current == limit + 1 dépasse.
        """
        limit = self.limits.limit_for(priority)
        if limit is None:
            return False

        current = self.store.count(owner, TaskStatus.ACTIVE, priority)
        exceeded = current > limit
        logger.info(
            "Owner %s has %s %s tasks Active, limit is %s, exceeded: %s",
            owner, current, Priority(priority).value, limit, exceeded,
        )
        return exceeded

    def on_task_created(self, event: TaskCreated) -> None:
        task = event.task
        if task.status != TaskStatus.ACTIVE:
            logger.debug("Task %s is not Active, skipping WIP check", task.id)
            return

        try:
            if not self.would_exceed(task.owner, task.priority):
                logger.info("WIP limits OK for task %s", task.id)
                return
            self.store.delete(task.id)
            logger.error("WIP limit exceeded! Deleted task %s for owner %s", task.id, task.owner)
        except TaskNotFound:
            logger.warning("Task %s vanished before its WIP rollback", task.id)
        except EngineError:
            # Rollback raté: la tâche reste Active jusqu'au prochain triage
            logger.exception("WIP check failed for new task %s, left as is", task.id)

    def on_task_updated(self, event: TaskUpdated) -> None:
        before, after = event.before, event.after
        if event.compensating:
            logger.debug("Task %s was reverted, skipping WIP check", after.id)
            return
        # Seules les transitions vers Active nous intéressent
        if before.status == TaskStatus.ACTIVE or after.status != TaskStatus.ACTIVE:
            return

        logger.info("Task %s moved to Active, checking WIP limits", after.id)
        try:
            if not self.would_exceed(after.owner, after.priority):
                logger.info("WIP limits OK for task %s status change", after.id)
                return
            self.store.replace(before)
            logger.error(
                "WIP limit exceeded! Reverted task %s to %s", after.id, before.status.value
            )
        except TaskNotFound:
            logger.warning("Task %s vanished before its WIP rollback", after.id)
        except EngineError:
            logger.exception("WIP rollback failed for task %s, left Active", after.id)
