"""
Surface d'événements du store.

Le store publie après chaque commit; les handlers réactifs (admission,
completion) s'abonnent ici. Livraison synchrone, en process, au moins une fois.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Union

from wipflow.schemas.task import TaskRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskCreated:
    task: TaskRecord


@dataclass(frozen=True)
class TaskUpdated:
    before: TaskRecord
    after: TaskRecord
    # Écriture de compensation (revert WIP): les handlers réactifs l'ignorent
    compensating: bool = False


TaskEvent = Union[TaskCreated, TaskUpdated]
CreatedHandler = Callable[[TaskCreated], None]
UpdatedHandler = Callable[[TaskUpdated], None]


class EventBus:
    def __init__(self) -> None:
        self._on_created: List[CreatedHandler] = []
        self._on_updated: List[UpdatedHandler] = []

    def subscribe_created(self, handler: CreatedHandler) -> None:
        self._on_created.append(handler)

    def subscribe_updated(self, handler: UpdatedHandler) -> None:
        self._on_updated.append(handler)

    def publish(self, event: TaskEvent) -> None:
        if isinstance(event, TaskCreated):
            handlers = list(self._on_created)
        else:
            handlers = list(self._on_updated)

        for handler in handlers:
            # Aucun canal de retour vers l'écrivain: on log et on continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, type(event).__name__)
