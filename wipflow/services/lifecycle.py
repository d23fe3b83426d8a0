"""Assemble le store, le bus d'événements, les handlers réactifs et les jobs."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from wipflow.core.clock import Clock, utcnow
from wipflow.core.config import EngineConfig, load_engine_config
from wipflow.core.events import EventBus
from wipflow.services.admission_service import AdmissionController
from wipflow.services.archive_service import StaleArchiver
from wipflow.services.completion_service import CompletionRecorder
from wipflow.services.task_store import TaskStore
from wipflow.services.triage_service import DailyTriageScheduler


@dataclass
class TaskLifecycle:
    config: EngineConfig
    session_factory: sessionmaker
    store: TaskStore
    admission: AdmissionController
    completion: CompletionRecorder
    triage: DailyTriageScheduler
    archiver: StaleArchiver
    clock: Clock = utcnow


def build_lifecycle(config: EngineConfig, session_factory: sessionmaker, clock: Clock = utcnow) -> TaskLifecycle:
    bus = EventBus()
    store = TaskStore(session_factory, bus, max_batch_size=config.batch_max_writes, clock=clock)

    admission = AdmissionController(store, config.wip_limits)
    completion = CompletionRecorder(store, clock=clock)
    # L'admission passe avant l'horodatage, comme dans un seul trigger onUpdate
    bus.subscribe_created(admission.on_task_created)
    bus.subscribe_updated(admission.on_task_updated)
    bus.subscribe_updated(completion.on_task_updated)

    return TaskLifecycle(
        config=config,
        session_factory=session_factory,
        store=store,
        admission=admission,
        completion=completion,
        triage=DailyTriageScheduler(store, config.wip_limits, config.batch_max_writes),
        archiver=StaleArchiver(store, config.retention, clock=clock, batch_max_writes=config.batch_max_writes),
        clock=clock,
    )


_default: Optional[TaskLifecycle] = None


def get_lifecycle() -> TaskLifecycle:
    """Instance par défaut, construite depuis l'environnement au premier appel."""
    global _default
    if _default is None:
        from wipflow.core.database import SessionLocal
        _default = build_lifecycle(load_engine_config(), SessionLocal)
    return _default
