"""Pydantic schemas for task snapshots and request/response validation."""

from pydantic import BaseModel, ConfigDict, field_validator
from datetime import datetime
from typing import Optional, List

from wipflow.models.enums import Priority, TaskStatus


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    project_id: Optional[str] = None
    priority: Priority = Priority.P3
    status: TaskStatus = TaskStatus.QUEUED
    due_date: Optional[datetime] = None
    urls: Optional[List[str]] = None
    attachments: Optional[List[str]] = None

    @field_validator("status")
    @classmethod
    def status_at_creation(cls, v: TaskStatus) -> TaskStatus:
        # Une tâche naît Queued ou Active, jamais Done/Archived
        if v not in (TaskStatus.QUEUED, TaskStatus.ACTIVE):
            raise ValueError("a task can only be created Queued or Active")
        return v


class TaskUpdate(BaseModel):
    """Schema for updating an existing task. `owner` and `created_on` cannot change."""

    title: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    urls: Optional[List[str]] = None
    attachments: Optional[List[str]] = None


class TaskRecord(BaseModel):
    """Snapshot immuable d'un document tâche, tel que lu dans le store."""

    id: int
    owner: str
    project_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    priority: Priority
    status: TaskStatus
    created_on: datetime
    due_date: Optional[datetime] = None
    completed_on: Optional[datetime] = None
    urls: Optional[List[str]] = None
    attachments: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)
