"""
Daily triage.

Phase A demotes every unfinished Active task to Queued. Phase B promotes, per
owner, the oldest Queued P1/P2 tasks back to Active within the WIP limits.
Each phase reads a snapshot, computes, then writes batches: tasks touched
between the read and the write are not seen by this run, and nothing guards
against a concurrent admission (last writer wins).
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from wipflow.core.config import WipLimits
from wipflow.core.errors import EngineError
from wipflow.models.enums import Priority, TaskStatus
from wipflow.schemas.job_run import TriageResult
from wipflow.schemas.task import TaskRecord
from wipflow.services.task_store import TaskStore, Write

logger = logging.getLogger(__name__)

# P3/P4 ne sont jamais promues automatiquement
PROMOTED_PRIORITIES = (Priority.P1, Priority.P2)


def chunked(writes: Sequence[Write], size: int) -> Iterable[Sequence[Write]]:
    # L'ordre du plan est conservé d'un batch à l'autre
    for start in range(0, len(writes), size):
        yield writes[start:start + size]


def plan_promotions(queued: Iterable[TaskRecord], limits: WipLimits) -> List[TaskRecord]:
    """
    Choisit les tâches à promouvoir.

    `queued` doit être trié par created_on croissant (puis id). Pour chaque
    owner: les p1_max_today plus anciennes P1 et les p2_max_today plus
    anciennes P2. Le résultat est groupé par owner puis par priorité.
    """
    by_owner: Dict[str, Dict[Priority, List[TaskRecord]]] = {}
    for task in queued:
        by_owner.setdefault(task.owner, {}).setdefault(task.priority, []).append(task)

    promoted = []
    for owner, by_priority in by_owner.items():
        counts = []
        for priority in PROMOTED_PRIORITIES:
            picked = by_priority.get(priority, [])[:limits.limit_for(priority)]
            promoted.extend(picked)
            counts.append(len(picked))
        logger.info("Owner %s: promoting %s P1 and %s P2 tasks", owner, *counts)
    return promoted


class DailyTriageScheduler:
    def __init__(self, store: TaskStore, limits: WipLimits, batch_max_writes: Optional[int] = None):
        self.store = store
        self.limits = limits
        self.batch_max_writes = batch_max_writes or store.max_batch_size

    def _commit(self, writes: List[Write]) -> None:
        for batch in chunked(writes, self.batch_max_writes):
            self.store.batch_write(batch)

    def demote_active(self) -> List[TaskRecord]:
        active = [
            t for t in self.store.query(status=TaskStatus.ACTIVE)
            if t.status != TaskStatus.DONE
        ]
        self._commit([(t.id, {"status": TaskStatus.QUEUED}) for t in active])
        logger.info("Moved %s unfinished tasks from Active to Queued", len(active))
        return active

    def promote_queued(self) -> Tuple[List[TaskRecord], List[TaskRecord]]:
        queued = list(self.store.query(status=TaskStatus.QUEUED, order_by_created=True))
        promoted = plan_promotions(queued, self.limits)
        self._commit([(t.id, {"status": TaskStatus.ACTIVE}) for t in promoted])
        logger.info("Promoted %s of %s Queued tasks to Active", len(promoted), len(queued))
        return queued, promoted

    def run(self) -> TriageResult:
        """Un run complet. Pas de retry: un échec en phase B laisse la phase A en place."""
        logger.info("Starting daily triage job...")
        result = TriageResult()
        seen = set()

        try:
            demoted = self.demote_active()
        except EngineError as e:
            logger.exception("Daily triage failed during demotion")
            result.success, result.error = False, f"demotion: {e}"
            return result
        result.tasks_moved_to_queued = len(demoted)
        seen.update(t.id for t in demoted)

        try:
            queued, promoted = self.promote_queued()
        except EngineError as e:
            logger.exception("Daily triage failed during promotion, demotions stay committed")
            result.success, result.error = False, f"promotion: {e}"
            result.tasks_processed = len(seen)
            return result
        result.tasks_promoted = len(promoted)
        seen.update(t.id for t in queued)
        result.tasks_processed = len(seen)

        logger.info(
            "Daily triage complete! %s demoted, %s promoted, %s processed",
            result.tasks_moved_to_queued, result.tasks_promoted, result.tasks_processed,
        )
        return result
