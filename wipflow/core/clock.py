from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    # UTC naïf, comme les colonnes DateTime en base
    return datetime.now(timezone.utc).replace(tzinfo=None)
