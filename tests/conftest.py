import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Créer engine SQLite pour tests AVANT d'importer l'app
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///./test.db"
test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# PATCH: remplacer le engine et SessionLocal du core.database AVANT d'importer l'app
import wipflow.core.database
wipflow.core.database.engine = test_engine
wipflow.core.database.SessionLocal = TestingSessionLocal

from wipflow.core.config import build_engine_config
from wipflow.core.database import Base
from wipflow.main import create_app
from wipflow.models.enums import Priority, TaskStatus
from wipflow.models.task import Task
from wipflow.schemas.task import TaskCreate
from wipflow.services.lifecycle import build_lifecycle


class FakeClock:
    """Horloge contrôlable pour les jobs basés sur le temps"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def setup_teardown():
    """Crée et nettoie la DB avant/après chaque test"""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 6, 0))


@pytest.fixture
def config():
    """Config par défaut: P1=3, P2=5, 90 jours"""
    return build_engine_config()


@pytest.fixture
def lifecycle(config, clock):
    return build_lifecycle(config, TestingSessionLocal, clock=clock)


@pytest.fixture
def store(lifecycle):
    return lifecycle.store


@pytest.fixture
def client(lifecycle):
    """Client de test FastAPI"""
    from fastapi.testclient import TestClient
    return TestClient(create_app(lifecycle))


@pytest.fixture
def make_task(store, clock):
    """Crée une tâche via le store (les handlers réactifs tournent)"""
    def _make(owner="alice", priority=Priority.P1, status=TaskStatus.QUEUED, created_on=None, title=None, **fields):
        payload = TaskCreate(
            title=title or f"{priority.value} task",
            priority=priority,
            status=status,
            **fields
        )
        return store.create(owner, payload, created_on=created_on or clock())
    return _make


@pytest.fixture
def seed_task(clock):
    """Insère directement en BD, sans passer par les événements"""
    def _seed(owner="alice", priority=Priority.P1, status=TaskStatus.QUEUED, created_on=None, title="seeded", **fields):
        db = TestingSessionLocal()
        task = Task(
            owner=owner,
            title=title,
            priority=priority.value,
            status=status.value,
            created_on=created_on or clock(),
            **fields
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        task_id = task.id
        db.close()
        return task_id
    return _seed


@pytest.fixture
def statuses(store):
    """Retourne {id: status} pour toutes les tâches"""
    def _statuses():
        return {t.id: t.status for t in store.query()}
    return _statuses


@pytest.fixture
def session_factory():
    return TestingSessionLocal
