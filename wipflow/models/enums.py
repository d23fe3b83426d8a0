from enum import Enum


class Priority(str, Enum):
    P1 = "P1"  # urgence la plus haute
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"


class TaskStatus(str, Enum):
    QUEUED = "Queued"
    ACTIVE = "Active"
    DONE = "Done"
    ARCHIVED = "Archived"
