"""Logging for the catalog toolkit.

Regular log lines go to the console. Batch jobs (imports, repairs) also emit
structured events through ``log_catalog_event``; those are appended to a
daily JSONL event log so a run can be audited row by row afterwards.
"""

import json
import logging
import os
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_catalog_event",
    "EventFileHandler",
    "LOG_DIR",
]

LOG_DIR = Path(os.getenv("CATALOG_LOG_DIR", Path(__file__).parent.parent / "logs"))

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class EventFileHandler(logging.Handler):
    """Appends catalog events to ``events_YYYYMMDD.jsonl``.

    Records without an ``event_type`` (ordinary log lines) are ignored.
    """

    def __init__(self, log_dir: Path):
        super().__init__(level=logging.DEBUG)
        self.log_dir = Path(log_dir)

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"events_{day:%Y%m%d}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        event_type = getattr(record, "event_type", None)
        if event_type is None:
            return
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "event": event_type,
            "level": record.levelname,
            "message": record.getMessage(),
            **getattr(record, "event_data", {}),
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(date.today()), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError:
            self.handleError(record)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    event_log: bool = True,
) -> logging.Logger:
    """Configure the ``catalog`` logger.

    Args:
        level: Console log level.
        log_dir: Directory for the JSONL event log (default: ``LOG_DIR``).
        event_log: Whether to write batch events to the event log.
    """
    logger = logging.getLogger("catalog")
    logger.setLevel(logging.DEBUG if event_log else level)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(console)

    if event_log:
        logger.addHandler(EventFileHandler(log_dir or LOG_DIR))

    return logger


def get_logger(name: str = "catalog") -> logging.Logger:
    if name == "catalog":
        return logging.getLogger("catalog")
    return logging.getLogger(f"catalog.{name}")


def log_catalog_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = "catalog",
) -> None:
    """Log a structured batch event (e.g. 'import_start', 'row_retry').

    An optional 'message' key in ``data`` becomes the log line; the rest is
    stored as event fields.
    """
    fields = {key: value for key, value in data.items() if key != "message"}
    get_logger(logger_name).log(
        level,
        data.get("message", event_type),
        extra={"event_type": event_type, "event_data": fields},
    )
