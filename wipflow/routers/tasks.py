from fastapi import APIRouter, Depends, HTTPException, status, Query, Header, Request
from typing import List, Optional

from wipflow.core.errors import TaskNotFound
from wipflow.models.enums import Priority, TaskStatus
from wipflow.schemas.task import TaskCreate, TaskUpdate, TaskRecord
from wipflow.services.lifecycle import TaskLifecycle

router = APIRouter(prefix="/tasks", tags=["tasks"])

WIP_REJECTED = "WIP limit exceeded, change rolled back"


def get_lifecycle(request: Request) -> TaskLifecycle:
    return request.app.state.lifecycle


def get_current_owner(x_owner_id: Optional[str] = Header(None)) -> str:
    # Pas d'auth ici: juste un identifiant stable de propriétaire
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing owner")
    return x_owner_id.strip()


def get_owned_task(lifecycle: TaskLifecycle, task_id: int, owner: str) -> TaskRecord:
    try:
        task = lifecycle.store.get(task_id)
    except TaskNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    if task.owner != owner:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


def apply_update(lifecycle: TaskLifecycle, task: TaskRecord, changes: dict) -> TaskRecord:
    """Écrit la mise à jour puis relit: les handlers ont pu la revert entre temps."""
    try:
        lifecycle.store.update_fields(task.id, changes)
        current = lifecycle.store.get(task.id)
    except TaskNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    wants_active = changes.get("status") == TaskStatus.ACTIVE and task.status != TaskStatus.ACTIVE
    if wants_active and current.status != TaskStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=WIP_REJECTED)
    return current


@router.post("", response_model=TaskRecord, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    owner: str = Depends(get_current_owner)
):
    created = lifecycle.store.create(owner, task_data)

    # Le contrôle d'admission a déjà tourné: la tâche peut avoir été supprimée
    try:
        return lifecycle.store.get(created.id)
    except TaskNotFound:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=WIP_REJECTED)


@router.get("", response_model=List[TaskRecord])
def list_tasks(
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    owner: str = Depends(get_current_owner),
    status_filter: Optional[TaskStatus] = Query(None),
    priority_filter: Optional[Priority] = Query(None),
    project_id: Optional[str] = Query(None),
    include_archived: bool = Query(False)
):
    tasks = lifecycle.store.query(owner=owner, status=status_filter, priority=priority_filter)

    results = []
    for task in tasks:
        if project_id and task.project_id != project_id:
            continue
        if task.status == TaskStatus.ARCHIVED and not (include_archived or status_filter):
            continue
        results.append(task)

    return sorted(results, key=lambda t: (t.created_on, t.id), reverse=True)


@router.get("/{task_id}", response_model=TaskRecord)
def get_task(
    task_id: int,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    owner: str = Depends(get_current_owner)
):
    return get_owned_task(lifecycle, task_id, owner)


@router.put("/{task_id}", response_model=TaskRecord)
def update_task(
    task_id: int,
    task_data: TaskUpdate,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    owner: str = Depends(get_current_owner)
):
    task = get_owned_task(lifecycle, task_id, owner)

    update_data = task_data.model_dump(exclude_unset=True)
    # title, priority et status ne peuvent pas être vidés
    for field in ("title", "priority", "status"):
        if field in update_data and update_data[field] is None:
            del update_data[field]

    if not update_data:
        return task
    return apply_update(lifecycle, task, update_data)


@router.post("/{task_id}/status", response_model=TaskRecord)
def update_status(
    task_id: int,
    new_status: TaskStatus = Query(...),
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    owner: str = Depends(get_current_owner)
):
    task = get_owned_task(lifecycle, task_id, owner)
    return apply_update(lifecycle, task, {"status": new_status})


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
    owner: str = Depends(get_current_owner)
):
    task = get_owned_task(lifecycle, task_id, owner)
    try:
        lifecycle.store.delete(task.id)
    except TaskNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
