import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ThirdPartyFilter(logging.Filter):
    """Garde tous les logs wipflow, mais seulement WARNING+ pour les libs (sqlalchemy, uvicorn...)"""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "wipflow" or record.name.startswith("wipflow."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure le logging une seule fois au démarrage.

    - console: niveau `level`, filtré
    - fichier (optionnel): tout en DEBUG
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Évite les handlers en double si l'app est recréée (tests, reload)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.getLevelName(level.upper()))
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyFilter())
    root.addHandler(ch)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    logging.captureWarnings(True)
