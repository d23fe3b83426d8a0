"""Task model"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from wipflow.core.clock import utcnow
from wipflow.core.database import Base
from wipflow.models.enums import Priority, TaskStatus


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    owner = Column(String, nullable=False, index=True)
    project_id = Column(String, nullable=True, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    priority = Column(String, nullable=False, default=Priority.P3.value, index=True)
    status = Column(String, nullable=False, default=TaskStatus.QUEUED.value, index=True)

    created_on = Column(DateTime, nullable=False, default=utcnow, index=True)
    due_date = Column(DateTime, nullable=True)  # pas utilisé par le moteur
    completed_on = Column(DateTime, nullable=True)

    urls = Column(JSON, nullable=True)
    attachments = Column(JSON, nullable=True)
