"""
Task store backed by SQLAlchemy.

Narrow collaborator interface used by the engine: per-document
create/get/delete/update, filtered queries, and all-or-nothing batch writes.
Every committed write publishes the matching event on the bus.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from wipflow.core.clock import Clock, utcnow
from wipflow.core.config import DEFAULT_BATCH_MAX_WRITES
from wipflow.core.errors import (
    ImmutableFieldError,
    PartialFailureIsNotAllowed,
    StoreUnavailable,
    TaskNotFound,
)
from wipflow.core.events import EventBus, TaskCreated, TaskUpdated
from wipflow.models.enums import Priority, TaskStatus
from wipflow.models.task import Task
from wipflow.schemas.task import TaskCreate, TaskRecord

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = {"id", "owner", "created_on"}
MUTABLE_FIELDS = {
    "project_id",
    "title",
    "description",
    "priority",
    "status",
    "due_date",
    "completed_on",
    "urls",
    "attachments",
}

Write = Tuple[int, Dict[str, Any]]


def _normalize(partial: Dict[str, Any]) -> Dict[str, Any]:
    values = {}
    for field, value in partial.items():
        if field in IMMUTABLE_FIELDS:
            raise ImmutableFieldError(field)
        if field not in MUTABLE_FIELDS:
            raise ValueError(f"Unknown task field '{field}'")
        # Les enums sont stockés par leur valeur
        values[field] = value.value if isinstance(value, Enum) else value
    return values


class TaskStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        bus: Optional[EventBus] = None,
        max_batch_size: int = DEFAULT_BATCH_MAX_WRITES,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self.bus = bus or EventBus()
        self.max_batch_size = max_batch_size
        self._clock = clock

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreUnavailable(str(e)) from e
        finally:
            db.close()

    @staticmethod
    def _load(db: Session, task_id: int) -> Task:
        task = db.query(Task).filter(Task.id == task_id).first()
        if task is None:
            raise TaskNotFound(task_id)
        return task

    # ========== DOCUMENTS ==========

    def create(
        self,
        owner: str,
        payload: TaskCreate,
        created_on: Optional[datetime] = None,
    ) -> TaskRecord:
        """Insère une tâche; l'id et created_on sont fixés ici et ne bougent plus."""
        values = _normalize(payload.model_dump())
        with self._session() as db:
            task = Task(owner=owner, created_on=created_on or self._clock(), **values)
            db.add(task)
            db.commit()
            db.refresh(task)
            record = TaskRecord.model_validate(task)

        logger.debug("Created task %s for owner %s (%s, %s)", record.id, owner, record.priority.value, record.status.value)
        self.bus.publish(TaskCreated(task=record))
        return record

    def get(self, task_id: int) -> TaskRecord:
        with self._session() as db:
            return TaskRecord.model_validate(self._load(db, task_id))

    def delete(self, task_id: int) -> None:
        with self._session() as db:
            db.delete(self._load(db, task_id))
            db.commit()
        logger.debug("Deleted task %s", task_id)

    def update_fields(
        self, task_id: int, partial: Dict[str, Any], compensating: bool = False
    ) -> TaskRecord:
        values = _normalize(partial)
        with self._session() as db:
            task = self._load(db, task_id)
            before = TaskRecord.model_validate(task)
            for field, value in values.items():
                setattr(task, field, value)
            db.commit()
            db.refresh(task)
            after = TaskRecord.model_validate(task)

        if before != after:
            self.bus.publish(TaskUpdated(before=before, after=after, compensating=compensating))
        return after

    def replace(self, snapshot: TaskRecord) -> TaskRecord:
        """
        Réécrit le document tel quel à partir d'un snapshot (tous les champs modifiables).

        L'événement publié est marqué compensating: ni l'admission ni le
        completion stamp ne réagissent à un revert.
        """
        return self.update_fields(
            snapshot.id, snapshot.model_dump(include=MUTABLE_FIELDS), compensating=True
        )

    # ========== REQUÊTES ==========

    def query(
        self,
        owner: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        priority: Optional[Priority] = None,
        created_before: Optional[datetime] = None,
        created_after: Optional[datetime] = None,
        order_by_created: bool = False,
    ) -> Iterator[TaskRecord]:
        """
        Séquence paresseuse, finie, à usage unique.

        Tri par created_on croissant puis id (départage déterministe).
        """
        with self._session() as db:
            q = db.query(Task)
            if owner is not None:
                q = q.filter(Task.owner == owner)
            if status is not None:
                q = q.filter(Task.status == TaskStatus(status).value)
            if priority is not None:
                q = q.filter(Task.priority == Priority(priority).value)
            if created_before is not None:
                q = q.filter(Task.created_on < created_before)
            if created_after is not None:
                q = q.filter(Task.created_on >= created_after)
            if order_by_created:
                q = q.order_by(Task.created_on.asc(), Task.id.asc())

            for task in q.yield_per(100):
                yield TaskRecord.model_validate(task)

    def count(self, owner: str, status: TaskStatus, priority: Priority) -> int:
        with self._session() as db:
            return db.query(Task).filter(
                Task.owner == owner,
                Task.status == TaskStatus(status).value,
                Task.priority == Priority(priority).value,
            ).count()

    # ========== BATCH ==========

    def batch_write(self, writes: Sequence[Write]) -> List[TaskRecord]:
        """
        Applique toutes les mises à jour dans une seule transaction, ou aucune.

        Un document disparu fait échouer tout le batch (PartialFailureIsNotAllowed).
        """
        if not writes:
            return []
        if len(writes) > self.max_batch_size:
            raise PartialFailureIsNotAllowed(
                f"Batch of {len(writes)} writes exceeds the limit of {self.max_batch_size}"
            )

        normalized = [(task_id, _normalize(partial)) for task_id, partial in writes]
        ids = {task_id for task_id, _ in normalized}

        with self._session() as db:
            rows = {t.id: t for t in db.query(Task).filter(Task.id.in_(ids)).all()}
            missing = sorted(ids - set(rows))
            if missing:
                raise PartialFailureIsNotAllowed(f"Tasks vanished before batch commit: {missing}")

            befores = {task_id: TaskRecord.model_validate(task) for task_id, task in rows.items()}
            for task_id, values in normalized:
                for field, value in values.items():
                    setattr(rows[task_id], field, value)
            db.commit()

            afters = []
            for task_id in dict.fromkeys(task_id for task_id, _ in normalized):
                db.refresh(rows[task_id])
                afters.append(TaskRecord.model_validate(rows[task_id]))

        logger.debug("Committed batch of %s writes", len(writes))
        for after in afters:
            before = befores[after.id]
            if before != after:
                self.bus.publish(TaskUpdated(before=before, after=after))
        return afters
