"""Erreurs du moteur de cycle de vie des tâches"""


class EngineError(Exception):
    """Base de toutes les erreurs du moteur"""


class StoreUnavailable(EngineError):
    # Panne I/O transitoire du stockage, jamais retentée par le moteur
    pass


class TaskNotFound(EngineError):
    def __init__(self, task_id):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class PartialFailureIsNotAllowed(EngineError):
    # Un batch n'a pas pu être appliqué en entier, rien n'a été écrit
    pass


class ConfigurationInvalid(EngineError):
    pass


class ImmutableFieldError(EngineError):
    def __init__(self, field: str):
        super().__init__(f"Field '{field}' is immutable")
        self.field = field
