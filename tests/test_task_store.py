"""
Tests du TaskStore (SQLAlchemy)
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wipflow.core.errors import (
    ImmutableFieldError,
    PartialFailureIsNotAllowed,
    StoreUnavailable,
    TaskNotFound,
)
from wipflow.core.events import EventBus, TaskCreated, TaskUpdated
from wipflow.models.enums import Priority, TaskStatus
from wipflow.schemas.task import TaskCreate
from wipflow.services.task_store import TaskStore

T0 = datetime(2026, 1, 10, 9, 0)


@pytest.fixture
def events():
    return []


@pytest.fixture
def bare_store(events, session_factory):
    """Store sans handlers réactifs, qui enregistre les événements publiés"""
    bus = EventBus()
    bus.subscribe_created(events.append)
    bus.subscribe_updated(events.append)
    return TaskStore(session_factory, bus, max_batch_size=3, clock=lambda: T0)


def new_task(title="Task", **fields):
    return TaskCreate(title=title, **fields)


# ========== TEST CREATE / GET ==========

def test_create_assigns_id_and_created_on(bare_store, events):
    """Tester que l'id et created_on sont fixés par le store"""
    record = bare_store.create("alice", new_task(priority=Priority.P2, urls=["https://example.com"]))

    assert record.id is not None
    assert record.owner == "alice"
    assert record.created_on == T0
    assert record.priority == Priority.P2
    assert record.status == TaskStatus.QUEUED
    assert record.completed_on is None
    assert record.urls == ["https://example.com"]
    assert events == [TaskCreated(task=record)]


def test_create_with_explicit_created_on(bare_store):
    created_on = T0 - timedelta(days=3)
    record = bare_store.create("alice", new_task(), created_on=created_on)
    assert bare_store.get(record.id).created_on == created_on


def test_get_missing_task(bare_store):
    with pytest.raises(TaskNotFound) as exc:
        bare_store.get(999)
    assert exc.value.task_id == 999


def test_delete(bare_store):
    record = bare_store.create("alice", new_task())
    bare_store.delete(record.id)

    with pytest.raises(TaskNotFound):
        bare_store.get(record.id)
    with pytest.raises(TaskNotFound):
        bare_store.delete(record.id)


# ========== TEST UPDATE ==========

def test_update_fields_publishes_before_and_after(bare_store, events):
    record = bare_store.create("alice", new_task())
    events.clear()

    after = bare_store.update_fields(record.id, {"status": TaskStatus.ACTIVE, "title": "Renamed"})

    assert after.status == TaskStatus.ACTIVE
    assert after.title == "Renamed"
    assert events == [TaskUpdated(before=record, after=after)]


def test_update_without_change_publishes_nothing(bare_store, events):
    record = bare_store.create("alice", new_task(title="Same"))
    events.clear()

    bare_store.update_fields(record.id, {"title": "Same"})
    assert events == []


@pytest.mark.parametrize("field", ["id", "owner", "created_on"])
def test_immutable_fields(bare_store, field):
    record = bare_store.create("alice", new_task())
    with pytest.raises(ImmutableFieldError):
        bare_store.update_fields(record.id, {field: "x"})


def test_unknown_field(bare_store):
    record = bare_store.create("alice", new_task())
    with pytest.raises(ValueError):
        bare_store.update_fields(record.id, {"colour": "red"})


def test_update_missing_task(bare_store):
    with pytest.raises(TaskNotFound):
        bare_store.update_fields(42, {"title": "x"})


def test_replace_restores_snapshot_verbatim(bare_store):
    """Tester que replace() remet tous les champs modifiables"""
    original = bare_store.create(
        "alice",
        new_task(title="Original", description="desc", project_id="proj-1", attachments=["a.pdf"]),
    )
    bare_store.update_fields(original.id, {
        "title": "Changed",
        "description": None,
        "status": TaskStatus.ACTIVE,
        "attachments": [],
    })

    restored = bare_store.replace(original)
    assert restored == original
    assert bare_store.get(original.id) == original


def test_replace_publishes_a_compensating_event(bare_store, events):
    """Tester qu'un revert est distingué d'une mise à jour client"""
    original = bare_store.create("alice", new_task(title="Original"))
    bare_store.update_fields(original.id, {"status": TaskStatus.ACTIVE})
    bare_store.replace(original)

    updates = [e for e in events if isinstance(e, TaskUpdated)]
    assert [e.compensating for e in updates] == [False, True]
    assert updates[-1].after == original


# ========== TEST QUERY ==========

def test_query_orders_by_created_on_then_id(bare_store):
    late = bare_store.create("alice", new_task("late"), created_on=T0)
    first_tie = bare_store.create("alice", new_task("tie-1"), created_on=T0 - timedelta(days=1))
    second_tie = bare_store.create("alice", new_task("tie-2"), created_on=T0 - timedelta(days=1))
    early = bare_store.create("alice", new_task("early"), created_on=T0 - timedelta(days=5))

    ids = [t.id for t in bare_store.query(order_by_created=True)]
    assert ids == [early.id, first_tie.id, second_tie.id, late.id]


def test_query_filters(bare_store):
    bare_store.create("alice", new_task(priority=Priority.P1, status=TaskStatus.ACTIVE))
    bare_store.create("alice", new_task(priority=Priority.P2, status=TaskStatus.ACTIVE))
    bare_store.create("bob", new_task(priority=Priority.P1, status=TaskStatus.ACTIVE))
    bare_store.create("alice", new_task(priority=Priority.P1), created_on=T0 - timedelta(days=100))

    alice_active_p1 = list(bare_store.query(owner="alice", status=TaskStatus.ACTIVE, priority=Priority.P1))
    assert len(alice_active_p1) == 1

    old = list(bare_store.query(created_before=T0 - timedelta(days=90)))
    assert len(old) == 1
    assert old[0].status == TaskStatus.QUEUED

    recent = list(bare_store.query(created_after=T0))
    assert len(recent) == 3


def test_query_is_one_shot(bare_store):
    bare_store.create("alice", new_task())
    bare_store.create("alice", new_task())

    results = bare_store.query()
    assert len(list(results)) == 2
    assert list(results) == []


def test_count(bare_store):
    for _ in range(2):
        bare_store.create("alice", new_task(priority=Priority.P1, status=TaskStatus.ACTIVE))
    bare_store.create("alice", new_task(priority=Priority.P1))

    assert bare_store.count("alice", TaskStatus.ACTIVE, Priority.P1) == 2
    assert bare_store.count("alice", TaskStatus.QUEUED, Priority.P1) == 1
    assert bare_store.count("bob", TaskStatus.ACTIVE, Priority.P1) == 0


# ========== TEST BATCH ==========

def test_batch_write_applies_all(bare_store, events):
    a = bare_store.create("alice", new_task())
    b = bare_store.create("bob", new_task())
    events.clear()

    afters = bare_store.batch_write([
        (a.id, {"status": TaskStatus.ACTIVE}),
        (b.id, {"status": TaskStatus.ARCHIVED}),
    ])

    assert [t.status for t in afters] == [TaskStatus.ACTIVE, TaskStatus.ARCHIVED]
    assert len(events) == 2
    assert all(isinstance(e, TaskUpdated) for e in events)


def test_batch_write_is_all_or_nothing(bare_store, events):
    """Un document disparu annule tout le batch"""
    a = bare_store.create("alice", new_task())
    events.clear()

    with pytest.raises(PartialFailureIsNotAllowed):
        bare_store.batch_write([
            (a.id, {"status": TaskStatus.ACTIVE}),
            (9999, {"status": TaskStatus.ACTIVE}),
        ])

    assert bare_store.get(a.id).status == TaskStatus.QUEUED
    assert events == []


def test_batch_write_size_limit(bare_store):
    ids = [bare_store.create("alice", new_task()).id for _ in range(4)]

    with pytest.raises(PartialFailureIsNotAllowed):
        bare_store.batch_write([(i, {"status": TaskStatus.ACTIVE}) for i in ids])

    assert all(t.status == TaskStatus.QUEUED for t in bare_store.query())


def test_empty_batch_is_noop(bare_store, events):
    assert bare_store.batch_write([]) == []
    assert events == []


# ========== TEST STORE UNAVAILABLE ==========

def test_store_unavailable_on_io_failure(tmp_path):
    """Une erreur SQLAlchemy devient StoreUnavailable"""
    broken_engine = create_engine(f"sqlite:///{tmp_path}/missing-dir/tasks.db")
    store = TaskStore(sessionmaker(bind=broken_engine))

    with pytest.raises(StoreUnavailable):
        store.get(1)
    with pytest.raises(StoreUnavailable):
        list(store.query())
    with pytest.raises(StoreUnavailable):
        store.create("alice", new_task())
