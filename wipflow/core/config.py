"""
Configuration du moteur.

`Settings` lit les valeurs brutes dans l'environnement, `build_engine_config()`
les valide et produit un `EngineConfig` immuable passé à chaque composant.
"""

import re
from os import getenv
from typing import Optional

from dateutil import tz
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wipflow.core.errors import ConfigurationInvalid
from wipflow.models.enums import Priority

DEFAULT_P1_MAX_TODAY = 3
DEFAULT_P2_MAX_TODAY = 5
DEFAULT_STALE_TASK_DAYS = 90
# Nombre max d'écritures par batch du store
DEFAULT_BATCH_MAX_WRITES = 500

_CRON_FIELD = re.compile(r"^[\d*/,\-]+$")


class Settings:
    DATABASE_URL = getenv("DATABASE_URL", "sqlite:///./wipflow.db")
    WIP_P1_MAX_TODAY = getenv("WIP_P1_MAX_TODAY", str(DEFAULT_P1_MAX_TODAY))
    WIP_P2_MAX_TODAY = getenv("WIP_P2_MAX_TODAY", str(DEFAULT_P2_MAX_TODAY))
    STALE_TASK_DAYS = getenv("STALE_TASK_DAYS", str(DEFAULT_STALE_TASK_DAYS))
    TRIAGE_SCHEDULE = getenv("TRIAGE_SCHEDULE", "0 6 * * *")  # tous les jours à 6h
    ARCHIVE_SCHEDULE = getenv("ARCHIVE_SCHEDULE", "30 6 * * *")  # après le triage
    JOBS_TIMEZONE = getenv("JOBS_TIMEZONE", "Europe/Paris")
    # Fuseau propre à chaque job, JOBS_TIMEZONE sinon
    TRIAGE_TIMEZONE = getenv("TRIAGE_TIMEZONE")
    ARCHIVE_TIMEZONE = getenv("ARCHIVE_TIMEZONE")
    BATCH_MAX_WRITES = getenv("BATCH_MAX_WRITES", str(DEFAULT_BATCH_MAX_WRITES))
    LOG_LEVEL = getenv("LOG_LEVEL", "INFO")
    LOG_FILE = getenv("LOG_FILE")

settings = Settings()


class WipLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    p1_max_today: int = Field(default=DEFAULT_P1_MAX_TODAY, ge=0)
    p2_max_today: int = Field(default=DEFAULT_P2_MAX_TODAY, ge=0)

    def limit_for(self, priority: Priority) -> Optional[int]:
        """Plafond pour une priorité, None si non contrainte (P3/P4)"""
        if priority == Priority.P1:
            return self.p1_max_today
        if priority == Priority.P2:
            return self.p2_max_today
        return None


class RetentionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    stale_after_days: int = Field(default=DEFAULT_STALE_TASK_DAYS, ge=0)


class JobSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    cron: str
    timezone: str


class EngineConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    wip_limits: WipLimits = WipLimits()
    retention: RetentionPolicy = RetentionPolicy()
    triage_schedule: JobSchedule = JobSchedule(cron="0 6 * * *", timezone="Europe/Paris")
    archive_schedule: JobSchedule = JobSchedule(cron="30 6 * * *", timezone="Europe/Paris")
    batch_max_writes: int = Field(default=DEFAULT_BATCH_MAX_WRITES, ge=1)


def _parse_int(name: str, raw) -> int:
    if raw is None or str(raw).strip() == "":
        raise ConfigurationInvalid(f"{name} is missing")
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ConfigurationInvalid(f"{name} must be an integer, got {raw!r}")


def _check_cron(name: str, expr: str) -> str:
    fields = (expr or "").split()
    if len(fields) != 5 or not all(_CRON_FIELD.match(f) for f in fields):
        raise ConfigurationInvalid(f"{name} is not a 5-field cron expression: {expr!r}")
    return " ".join(fields)


def _check_timezone(name: str, value: str) -> str:
    # gettz("") renvoie le fuseau local, on le refuse explicitement
    if not value or tz.gettz(value) is None:
        raise ConfigurationInvalid(f"{name} is not a known time zone: {value!r}")
    return value


def build_engine_config(
    p1_max_today=DEFAULT_P1_MAX_TODAY,
    p2_max_today=DEFAULT_P2_MAX_TODAY,
    stale_task_days=DEFAULT_STALE_TASK_DAYS,
    triage_schedule: str = "0 6 * * *",
    archive_schedule: str = "30 6 * * *",
    timezone: str = "Europe/Paris",
    batch_max_writes=DEFAULT_BATCH_MAX_WRITES,
    triage_timezone: Optional[str] = None,
    archive_timezone: Optional[str] = None,
) -> EngineConfig:
    """
    Valide les valeurs brutes et construit la config.

    Lève ConfigurationInvalid au démarrage si une limite ou le seuil manque
    ou est négatif: jamais de valeur par défaut silencieuse.
    """
    tz_name = _check_timezone("JOBS_TIMEZONE", timezone)
    triage_tz = tz_name if triage_timezone is None else _check_timezone("TRIAGE_TIMEZONE", triage_timezone)
    archive_tz = tz_name if archive_timezone is None else _check_timezone("ARCHIVE_TIMEZONE", archive_timezone)
    try:
        return EngineConfig(
            wip_limits=WipLimits(
                p1_max_today=_parse_int("WIP_P1_MAX_TODAY", p1_max_today),
                p2_max_today=_parse_int("WIP_P2_MAX_TODAY", p2_max_today),
            ),
            retention=RetentionPolicy(
                stale_after_days=_parse_int("STALE_TASK_DAYS", stale_task_days),
            ),
            triage_schedule=JobSchedule(
                cron=_check_cron("TRIAGE_SCHEDULE", triage_schedule), timezone=triage_tz
            ),
            archive_schedule=JobSchedule(
                cron=_check_cron("ARCHIVE_SCHEDULE", archive_schedule), timezone=archive_tz
            ),
            batch_max_writes=_parse_int("BATCH_MAX_WRITES", batch_max_writes),
        )
    except ValidationError as e:
        raise ConfigurationInvalid(str(e)) from e


def load_engine_config(source: Settings = settings) -> EngineConfig:
    return build_engine_config(
        p1_max_today=source.WIP_P1_MAX_TODAY,
        p2_max_today=source.WIP_P2_MAX_TODAY,
        stale_task_days=source.STALE_TASK_DAYS,
        triage_schedule=source.TRIAGE_SCHEDULE,
        archive_schedule=source.ARCHIVE_SCHEDULE,
        timezone=source.JOBS_TIMEZONE,
        batch_max_writes=source.BATCH_MAX_WRITES,
        triage_timezone=source.TRIAGE_TIMEZONE,
        archive_timezone=source.ARCHIVE_TIMEZONE,
    )
